# orchestrator.py
# Deployment orchestrator for interdependent upgradeable proxy modules.
#
# The Orchestrator owns one run: it validates the whole plan before the first
# chain call, then creates modules strictly one at a time, threading each new
# address into the initializer arguments of the modules that follow.
#
# State machine (per run):
#   PLANNING → EXECUTING → COMPLETED
#       ↓          ↓
#     FAILED     FAILED
#
# All terminal output is delegated to display.py — no formatting here.

from enum import Enum
from typing import Any, Iterable

from proxy_deploy import display
from proxy_deploy.client import ChainClient
from proxy_deploy.duration import offset_from
from proxy_deploy.errors import (
    ClientError,
    ConfigurationError,
    CyclicDependencyError,
    DeploymentFailedError,
    UnresolvedDependencyError,
)
from proxy_deploy.models import (
    AddressSlot,
    DeployedModule,
    DeploymentPlan,
    ModuleSpec,
    ResumeState,
    TimestampSlot,
)


class RunState(str, Enum):
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def resolve_plan(
    specs: Iterable[ModuleSpec], resume: ResumeState | None = None
) -> DeploymentPlan:
    """
    Order module specs so every dependency precedes its dependents.

    Specs already present in `resume` are dropped; their addresses satisfy
    dependencies as-is. Ties keep input order. Pure: no chain access.

    Raises ConfigurationError on duplicate names, UnresolvedDependencyError on
    a dependency that is neither planned nor known, CyclicDependencyError if
    no order exists. Timestamp offsets are converted once here so an
    out-of-range duration fails before the first creation.
    """
    known = set(resume.addresses) if resume else set()
    pending: dict[str, ModuleSpec] = {}
    seen: set[str] = set()
    for spec in specs:
        if spec.name in seen:
            raise ConfigurationError(f"Duplicate module name '{spec.name}'.")
        seen.add(spec.name)
        if spec.name not in known:
            pending[spec.name] = spec

    for spec in pending.values():
        for dep in sorted(spec.dependencies):
            if dep == spec.name:
                raise CyclicDependencyError([spec.name])
            if dep not in pending and dep not in known:
                raise UnresolvedDependencyError(spec.name, dep)
        for slot in spec.init_args:
            if isinstance(slot, TimestampSlot):
                offset_from(0, *slot.offset)

    # Kahn's algorithm, rescanning in input order for a stable result.
    ordered: list[ModuleSpec] = []
    placed = set(known)
    while pending:
        ready = [s for s in pending.values() if s.dependencies <= placed]
        if not ready:
            raise CyclicDependencyError(list(pending))
        for spec in ready:
            ordered.append(spec)
            placed.add(spec.name)
            del pending[spec.name]

    return DeploymentPlan(modules=tuple(ordered), external=frozenset(known))


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """
    Runs one deployment against a chain client.

    Example:
        orchestrator = Orchestrator(HttpChainClient(rpc_url))
        deployed = orchestrator.run(load_modules("config/modules.json"))

    An instance is single-use: once COMPLETED or FAILED it refuses to run again.
    Re-run a partial deployment with a fresh instance and the ResumeState
    carried by the DeploymentFailedError.
    """

    def __init__(self, client: ChainClient) -> None:
        self._client = client
        self.state = RunState.PLANNING
        self.results: dict[str, DeployedModule] = {}

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def resolve_plan(
        self, specs: Iterable[ModuleSpec], resume: ResumeState | None = None
    ) -> DeploymentPlan:
        self._require(RunState.PLANNING)
        try:
            plan = resolve_plan(specs, resume)
        except ConfigurationError:
            self.state = RunState.FAILED
            raise
        display.plan_resolved(plan)
        return plan

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _resolve_args(self, spec: ModuleSpec, now: int) -> list[Any]:
        args: list[Any] = []
        for slot in spec.init_args:
            if isinstance(slot, AddressSlot):
                args.append(self.results[slot.module].address)
            elif isinstance(slot, TimestampSlot):
                args.append(offset_from(now, *slot.offset))
            else:
                args.append(slot.value)
        return args

    def execute(
        self, plan: DeploymentPlan, resume: ResumeState | None = None
    ) -> list[DeployedModule]:
        """
        Create every module in plan order and return the ones created.

        Halts on the first failure of any kind with DeploymentFailedError; modules
        created before it are reported on the error, never rolled back.
        """
        self._require(RunState.PLANNING)
        known = dict(resume.addresses) if resume else {}
        missing = plan.external - set(known)
        if missing:
            self.state = RunState.FAILED
            raise ConfigurationError(
                "Plan expects known addresses for: " + ", ".join(sorted(missing))
            )

        self.state = RunState.EXECUTING
        total = len(plan.modules)
        display.execution_start(total)

        for name, address in known.items():
            self.results[name] = DeployedModule(name=name, address=address, resumed=True)
            display.module_resumed(name, address)

        created: list[DeployedModule] = []
        for position, spec in enumerate(plan.modules, start=1):
            display.module_start(position, total, spec)
            try:
                # Chain time is read per module at creation, never at plan time.
                now = self._client.now()
                display.clock_read(now)
                args = self._resolve_args(spec, now)
                display.module_creating(args)
                address, receipt = self._client.create_upgradeable_module(
                    spec.factory_ref, args, spec.initializer, spec.proxy_kind
                )
            except Exception as exc:
                self.state = RunState.FAILED
                display.deployment_failed(spec.name, position, total, exc, created)
                raise DeploymentFailedError(
                    spec.name, position, total, exc, list(created), known
                ) from exc

            record = DeployedModule(
                name=spec.name,
                address=address,
                deployed_at=now,
                init_args=tuple(args),
                receipt=receipt,
            )
            self.results[spec.name] = record
            created.append(record)
            display.module_deployed(spec.name, address)

        self.state = RunState.COMPLETED
        display.execution_summary(created)
        return created

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(
        self, specs: Iterable[ModuleSpec], resume: ResumeState | None = None
    ) -> list[DeployedModule]:
        """Validate the full plan, then execute it."""
        try:
            account = self._client.current_account()
        except ClientError:
            self.state = RunState.FAILED
            raise
        display.banner(account, type(self._client).__name__)
        plan = self.resolve_plan(specs, resume)
        return self.execute(plan, resume)

    def _require(self, state: RunState) -> None:
        if self.state is not state:
            raise RuntimeError(
                f"Orchestrator is {self.state.value}; expected {state.value}. "
                "Use a new instance for another run."
            )
