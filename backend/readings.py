# backend/readings.py

import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from .config import FieldSchema
from .rate import STATUS_UNKNOWN, RateResult, UNKNOWN, compute_rate
from .utils import format_local

logger = logging.getLogger(__name__)

CHART_LIMIT = 10


def new_reading_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Reading:
    timestamp: datetime
    is_relevant: bool
    fields: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_reading_id)
    derived_rate: Optional[int] = None
    status: str = STATUS_UNKNOWN
    image_ref: Optional[str] = None
    summary: Optional[str] = None

    def value(self, name: str) -> Any:
        return self.fields.get(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "isRelevant": self.is_relevant,
            **self.fields,
            "derivedRate": self.derived_rate,
            "status": self.status,
            "summary": self.summary,
        }


def reading_from_record(
    record: Dict[str, Any],
    schema: FieldSchema,
    timestamp: datetime,
    image_ref: Optional[str] = None,
) -> Reading:
    """Build a Reading from a normalized OCR record (see normalizer.to_record)."""
    is_relevant = bool(record.get("isRelevant"))
    if is_relevant:
        values = {name: record.get(name) for name in schema.fields}
    else:
        # unrelated photos keep only their summary
        values = {name: None for name in schema.fields}
    return Reading(
        timestamp=timestamp,
        is_relevant=is_relevant,
        fields=values,
        image_ref=image_ref,
        summary=record.get("summary") or None,
    )


class RelevantView:
    """Lazy view over the relevant readings of a log; iterable any number of times."""

    def __init__(self, log: "ProductionLog"):
        self._log = log

    def __iter__(self) -> Iterator[Reading]:
        return (r for r in self._log if r.is_relevant)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return any(True for _ in self)

    def last(self, n: int) -> List[Reading]:
        return list(self)[-n:] if n > 0 else []


class ProductionLog:
    """
    Append-only, insertion-ordered log of readings.

    Derived rate/status of an entry is computed against the nearest
    preceding relevant entry by position, on append and on correction.
    Corrections never cascade to later entries.
    """

    def __init__(self, schema: FieldSchema):
        self.schema = schema
        self._entries: List[Reading] = []

    def __iter__(self) -> Iterator[Reading]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def _index_of(self, reading_id: str) -> int:
        for idx, r in enumerate(self._entries):
            if r.id == reading_id:
                return idx
        raise KeyError(reading_id)

    def get(self, reading_id: str) -> Reading:
        return self._entries[self._index_of(reading_id)]

    def previous_relevant(self, index: int) -> Optional[Reading]:
        for r in reversed(self._entries[:index]):
            if r.is_relevant:
                return r
        return None

    def latest_relevant(self) -> Optional[Reading]:
        return self.previous_relevant(len(self._entries))

    def filter_relevant(self) -> RelevantView:
        return RelevantView(self)

    def _derive(self, reading: Reading, index: int) -> RateResult:
        if not reading.is_relevant:
            return UNKNOWN
        prev = self.previous_relevant(index)
        if prev is None:
            return UNKNOWN
        rate_field = self.schema.rate_field
        return compute_rate(
            reading.value(rate_field),
            reading.timestamp,
            prev.value(rate_field),
            prev.timestamp,
            self.schema.normal_rate_threshold,
        )

    def append(self, reading: Reading) -> Reading:
        """Store a copy of `reading` with a fresh id and its derived rate/status."""
        index = len(self._entries)
        result = self._derive(reading, index)
        stored = replace(
            reading,
            id=new_reading_id(),
            fields=dict(reading.fields),
            derived_rate=result.rate,
            status=result.status,
        )
        self._entries.append(stored)
        logger.info(
            "Reading %s appended (relevant=%s, rate=%s, status=%s)",
            stored.id, stored.is_relevant, stored.derived_rate, stored.status,
        )
        return stored

    def correct_field(self, reading_id: str, new_value: Any, field_name: Optional[str] = None) -> Reading:
        """
        Manually correct one numeric field of one entry and recompute that
        entry's rate/status. Raises KeyError for an unknown id and ValueError
        for a bad field, a bad value, or an unrecognized reading.
        """
        name = field_name or self.schema.rate_field
        if not self.schema.is_numeric(name):
            raise ValueError(f"{name!r} is not a numeric field of the {self.schema.name!r} schema")
        value = validate_count(new_value)

        index = self._index_of(reading_id)
        current = self._entries[index]
        if not current.is_relevant:
            raise ValueError("Corrections are not allowed for readings that were not recognized")

        corrected = replace(current, fields={**current.fields, name: value})
        result = self._derive(corrected, index)
        corrected = replace(corrected, derived_rate=result.rate, status=result.status)
        self._entries[index] = corrected
        logger.info("Reading %s corrected: %s=%s (rate=%s)", reading_id, name, value, corrected.derived_rate)
        return corrected


def validate_count(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("Count must be a number")
    if isinstance(value, str):
        value = value.strip()
        if not value.lstrip("-").isdigit():
            raise ValueError(f"Count must be a whole number, got {value!r}")
        value = int(value)
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise ValueError(f"Count must be a whole number, got {value!r}")
        value = int(value)
    if not isinstance(value, int):
        raise ValueError(f"Count must be a number, got {type(value).__name__}")
    if value < 0:
        raise ValueError("Count must be zero or greater")
    return value


def chart_series(log: ProductionLog, offset_hours: float, limit: int = CHART_LIMIT) -> List[Dict[str, Any]]:
    """Last `limit` relevant readings as chart rows; missing values plot as 0."""
    rows = []
    for r in log.filter_relevant().last(limit):
        row: Dict[str, Any] = {"time": format_local(r.timestamp, "HH:mm", offset_hours)}
        for name in log.schema.chart_fields:
            row[name] = r.value(name) or 0
        rows.append(row)
    return rows


def time_since_last_scan(log: ProductionLog, now: datetime) -> str:
    latest = log.latest_relevant()
    if latest is None:
        return "no records"
    minutes = math.floor((now - latest.timestamp).total_seconds() / 60)
    if minutes <= 0:
        return "just now"
    if minutes == 1:
        return "1 min ago"
    return f"{minutes} min ago"
