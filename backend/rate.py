# backend/rate.py

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

STATUS_NORMAL = "normal"
STATUS_SLOW = "slow"
STATUS_UNKNOWN = "unknown"

# Readings further apart than this are not compared
MAX_DELTA_MINUTES = 60.0


@dataclass(frozen=True)
class RateResult:
    rate: Optional[int]
    status: str


UNKNOWN = RateResult(rate=None, status=STATUS_UNKNOWN)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_rate_per_minute(delta_units: float, delta_minutes: float) -> int:
    if delta_minutes <= 0:
        return 0
    return max(0, round_half_up(delta_units / delta_minutes))


def classify_rate(rate: Optional[int], threshold: float) -> str:
    if rate is None:
        return STATUS_UNKNOWN
    if rate >= threshold:
        return STATUS_NORMAL
    return STATUS_SLOW


def compute_rate(
    current_value: Optional[float],
    current_ts: datetime,
    previous_value: Optional[float],
    previous_ts: datetime,
    threshold: float,
) -> RateResult:
    """
    Units per minute between two readings, plus normal/slow status.

    Undefined (status "unknown") when either value is missing, the gap is
    not in (0, 60] minutes (backdated photos produce negative gaps), or the
    counter went down.
    """
    if current_value is None or previous_value is None:
        return UNKNOWN
    if current_ts is None or previous_ts is None:
        return UNKNOWN

    delta_minutes = (current_ts - previous_ts).total_seconds() / 60.0
    if not 0 < delta_minutes <= MAX_DELTA_MINUTES:
        return UNKNOWN

    delta_units = current_value - previous_value
    if delta_units < 0:
        return UNKNOWN

    rate = estimate_rate_per_minute(delta_units, delta_minutes)
    return RateResult(rate=rate, status=classify_rate(rate, threshold))
