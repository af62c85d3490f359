# backend/config.py

import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class FieldSchema:
    name: str
    numeric_fields: Tuple[str, ...]
    text_fields: Tuple[str, ...]
    rate_field: str
    normal_rate_threshold: int
    chart_fields: Tuple[str, ...]

    @property
    def fields(self) -> Tuple[str, ...]:
        return self.text_fields + self.numeric_fields

    def is_numeric(self, field_name: str) -> bool:
        return field_name in self.numeric_fields


COUNTER_SCHEMA = FieldSchema(
    name="counter",
    numeric_fields=("boxCount", "bottleCount"),
    text_fields=(),
    rate_field="bottleCount",
    normal_rate_threshold=50,
    chart_fields=("boxCount", "bottleCount"),
)

PRODUCTION_SCHEMA = FieldSchema(
    name="production",
    numeric_fields=("plannedQuantity", "completedQuantity"),
    text_fields=("operatingLine", "productionDate", "productName", "lotNo"),
    rate_field="completedQuantity",
    normal_rate_threshold=600,
    chart_fields=("plannedQuantity", "completedQuantity"),
)

SCHEMAS: Dict[str, FieldSchema] = {
    COUNTER_SCHEMA.name: COUNTER_SCHEMA,
    PRODUCTION_SCHEMA.name: PRODUCTION_SCHEMA,
}


def get_schema(name: Optional[str] = None) -> FieldSchema:
    """
    Resolve the deployed field schema.
    Falls back to FIELD_SCHEMA from the environment, then "production".
    RATE_NORMAL_THRESHOLD (if set) overrides the schema's threshold.
    """
    key = (name or os.getenv("FIELD_SCHEMA") or PRODUCTION_SCHEMA.name).strip().lower()
    if key not in SCHEMAS:
        raise ValueError(f"Unknown field schema: {key!r} (expected one of {sorted(SCHEMAS)})")
    schema = SCHEMAS[key]

    threshold = _env_int("RATE_NORMAL_THRESHOLD", schema.normal_rate_threshold)
    if threshold != schema.normal_rate_threshold:
        schema = FieldSchema(
            name=schema.name,
            numeric_fields=schema.numeric_fields,
            text_fields=schema.text_fields,
            rate_field=schema.rate_field,
            normal_rate_threshold=threshold,
            chart_fields=schema.chart_fields,
        )
    return schema


def get_api_key() -> Optional[str]:
    # read per request so the key can be set after startup
    key = (os.getenv("GEMINI_API_KEY") or "").strip()
    return key or None


# Gemini (hosted multimodal OCR)
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_API_URL = os.getenv("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta")
GEMINI_TIMEOUT_SEC = _env_float("GEMINI_TIMEOUT_SEC", 60.0)

# Decoded image size limit for /api/ocr (bytes)
MAX_IMAGE_BYTES = _env_int("MAX_IMAGE_BYTES", 10 * 1024 * 1024)

# Timestamps are displayed in a fixed zone (default KST, UTC+9)
DISPLAY_TZ_OFFSET_HOURS = _env_float("DISPLAY_TZ_OFFSET_HOURS", 9.0)

CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

# Dashboard -> proxy
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")
