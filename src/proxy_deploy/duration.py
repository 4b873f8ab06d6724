# duration.py
# Calendar duration → seconds.
#
# A stateless lookup table: each unit is defined in terms of the previous one
# (minutes = 60 seconds, ..., years = 365 days). No side effects.

import math
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from proxy_deploy.errors import ConfigurationError
from proxy_deploy.models import DurationSpec, DurationUnit


_SECONDS = 1
_MINUTES = 60 * _SECONDS
_HOURS = 60 * _MINUTES
_DAYS = 24 * _HOURS
_WEEKS = 7 * _DAYS
_YEARS = 365 * _DAYS

UNIT_SECONDS: dict[DurationUnit, int] = {
    DurationUnit.SECONDS: _SECONDS,
    DurationUnit.MINUTES: _MINUTES,
    DurationUnit.HOURS: _HOURS,
    DurationUnit.DAYS: _DAYS,
    DurationUnit.WEEKS: _WEEKS,
    DurationUnit.YEARS: _YEARS,
}


def _coerce(spec: DurationSpec | Mapping[str, Any]) -> DurationSpec:
    if isinstance(spec, DurationSpec):
        return spec
    try:
        return DurationSpec.model_validate(spec)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid duration {dict(spec)!r}: {exc}") from exc


def to_base_units(spec: DurationSpec | Mapping[str, Any]) -> int:
    """
    Convert a duration to a whole number of seconds.

    Accepts a DurationSpec or a plain mapping such as {"unit": "days", "value": 90}.
    Raises ConfigurationError on an unknown unit, a negative value or a
    magnitude too large to express in seconds.
    """
    duration = _coerce(spec)
    seconds = duration.value * UNIT_SECONDS[duration.unit]
    if not math.isfinite(seconds):
        raise ConfigurationError(f"Duration {duration.value} {duration.unit.value} is out of range.")
    return int(seconds)


def offset_from(now: int, *specs: DurationSpec | Mapping[str, Any]) -> int:
    """Timestamp `now` shifted forward by the sum of `specs`."""
    return now + sum(to_base_units(s) for s in specs)
