"""Canonical hashrate samples and the numeric normalization they rely on."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

NOT_APPLICABLE = -1
REPORTED = "reported"

_NUMERIC_PREFIX_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class SourceError(Exception):
    """Base class for per-source failures that skip only the affected source."""


class ExtractionError(SourceError):
    """Raised when a response body does not match the shape a source expects."""


@dataclass(frozen=True)
class HashrateSample:
    """Canonical internal representation of one pool's hashrate in one bucket."""

    hashrate_timestamp: datetime
    pool_id: int
    avg_hashrate: float = NOT_APPLICABLE
    share: float = NOT_APPLICABLE
    type: str = REPORTED


def bucket_timestamp(now: datetime | None = None) -> datetime:
    """Truncate ``now`` (default: current UTC time) to the whole minute."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.replace(second=0, microsecond=0)


def to_decimal(value: object) -> Decimal:
    """Convert a JSON number or numeric string to a finite Decimal."""
    if isinstance(value, bool):
        raise ExtractionError(f"expected a number, got boolean {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # repr keeps the shortest round-tripping form, not the binary expansion
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ExtractionError(f"not a numeric string: {value!r}") from exc
    else:
        raise ExtractionError(f"expected a number, got {type(value).__name__}")
    if not result.is_finite():
        raise ExtractionError(f"non-finite value: {value!r}")
    return result


def parse_numeric_prefix(text: object) -> Decimal:
    """Parse the leading number of a string such as ``"12345.6 GH/s"``."""
    if not isinstance(text, str):
        raise ExtractionError(f"expected a string, got {type(text).__name__}")
    match = _NUMERIC_PREFIX_RE.match(text)
    if match is None:
        raise ExtractionError(f"no numeric prefix in {text!r}")
    return to_decimal(match.group(1))


def scale_hashrate(raw: Decimal, unit_scale: Decimal, round_result: bool = False) -> float:
    """Apply a unit scale to a raw figure and return canonical H/s.

    Rounding is half-up to an integer. Negative results and values too large
    for a float are rejected.
    """
    value = raw * unit_scale
    if round_result:
        value = value.to_integral_value(rounding=ROUND_HALF_UP)
    if value < 0:
        raise ExtractionError(f"negative hashrate: {value}")
    result = float(value)
    if not math.isfinite(result):
        raise ExtractionError(f"non-finite value: {value} overflows a float")
    return result
