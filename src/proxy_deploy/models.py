# models.py
# Data contracts for the proxy deployment orchestrator.
# No business logic lives here — pure schema and validation.

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class DurationUnit(str, Enum):
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    YEARS = "years"


class DurationSpec(BaseModel):
    """A calendar duration, e.g. {"unit": "minutes", "value": 4}."""

    model_config = ConfigDict(frozen=True)

    unit: DurationUnit
    value: (
        Annotated[int, Field(ge=0)]
        | Annotated[float, Field(ge=0, allow_inf_nan=False)]
    ) = Field(..., description="Non-negative, finite magnitude.")


# ---------------------------------------------------------------------------
# Initializer argument slots
# ---------------------------------------------------------------------------


class LiteralSlot(BaseModel):
    """Passed to the initializer unchanged."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["literal"] = "literal"
    value: Any


class AddressSlot(BaseModel):
    """Replaced by the address of a previously deployed module."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["address"] = "address"
    module: str = Field(..., min_length=1)


class TimestampSlot(BaseModel):
    """Replaced by now() + sum(offset), with now() read at creation time."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["timestamp"] = "timestamp"
    offset: tuple[DurationSpec, ...] = ()


Slot = Annotated[
    Union[LiteralSlot, AddressSlot, TimestampSlot],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


class ModuleSpec(BaseModel):
    """One deployable upgradeable module."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Stable, unique module name.")
    factory: str | None = Field(
        default=None, description="Contract factory reference. Defaults to name."
    )
    init_args: tuple[Slot, ...] = ()
    depends_on: frozenset[str] = frozenset()
    initializer: str = "initialize"
    proxy_kind: Literal["uups", "transparent"] = "uups"

    @property
    def factory_ref(self) -> str:
        return self.factory or self.name

    @property
    def dependencies(self) -> frozenset[str]:
        """Declared dependencies plus every module referenced by an address slot."""
        refs = {slot.module for slot in self.init_args if isinstance(slot, AddressSlot)}
        return self.depends_on | refs


class DeploymentPlan(BaseModel):
    """Module specs in a validated deployment order."""

    model_config = ConfigDict(frozen=True)

    modules: tuple[ModuleSpec, ...]
    external: frozenset[str] = Field(
        default_factory=frozenset,
        description="Module names whose addresses come from a resume state.",
    )

    @property
    def names(self) -> list[str]:
        return [m.name for m in self.modules]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class DeploymentReceipt(BaseModel):
    """Confirmation returned by a chain client for one creation call."""

    model_config = ConfigDict(frozen=True)

    transaction_hash: str | None = None
    block_number: int | None = None


class DeployedModule(BaseModel):
    """Immutable record of a module that exists on chain."""

    model_config = ConfigDict(frozen=True)

    name: str
    address: str
    deployed_at: int | None = Field(
        default=None, description="Chain timestamp observed at creation."
    )
    init_args: tuple[Any, ...] = ()
    receipt: DeploymentReceipt | None = None
    resumed: bool = Field(
        default=False, description="True when the address came from a resume state."
    )


class ResumeState(BaseModel):
    """Addresses of modules already on chain, keyed by module name."""

    addresses: dict[str, str] = Field(default_factory=dict)
