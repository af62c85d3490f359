# backend/normalizer.py

"""
Turn raw OCR / vision-model replies into fixed records.

Two reply shapes are handled:
  - structured replies (JSON, fenced JSON, or JSON buried in prose)
    -> parse_structured() returns Ok(record) or Err(reason, raw_text),
       to_record() turns either into a complete record dict
  - number-only replies
    -> extract_number() returns the most plausible counter value or None

Nothing in here raises on bad model output.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .config import FieldSchema

logger = logging.getLogger(__name__)

FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
DIGIT_RUN_RE = re.compile(r"\d+")

# Digit-run lengths tried in order by extract_number()
PREFERRED_RUN_LENGTHS = (4, 3, 2)


@dataclass(frozen=True)
class Ok:
    record: Dict[str, Any]


@dataclass(frozen=True)
class Err:
    reason: str
    raw_text: str


ParseResult = Union[Ok, Err]


# ---------- JSON location ----------

def find_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced {...} substring, honoring JSON string escapes."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _candidates(text: str) -> List[str]:
    stripped = text.strip()
    out = [stripped]
    fence = FENCE_RE.search(text)
    if fence:
        out.append(fence.group(1))
    obj = find_balanced_object(text)
    if obj:
        out.append(obj)
    return out


def load_json_object(text: str) -> Dict[str, Any]:
    """
    Try, in order: the whole text, a fenced code block, the first balanced
    {...} substring. Raises ValueError if none of them is a JSON object.
    """
    last_error = "no JSON object found"
    for candidate in _candidates(text):
        if not candidate:
            continue
        try:
            value = json.loads(candidate)
        except ValueError as e:
            last_error = str(e)
            continue
        if isinstance(value, dict):
            return value
        last_error = f"expected a JSON object, got {type(value).__name__}"
    raise ValueError(last_error)


# ---------- field coercion ----------

def coerce_number(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        cleaned = value.replace(",", "").replace(" ", "").strip()
        if re.fullmatch(r"-?\d+", cleaned):
            return int(cleaned)
        if re.fullmatch(r"-?\d+\.0*", cleaned):
            return int(cleaned.split(".")[0])
    return None


def coerce_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def empty_record(schema: FieldSchema, summary: str = "", raw_text: str = "") -> Dict[str, Any]:
    record: Dict[str, Any] = {"isRelevant": False}
    for name in schema.fields:
        record[name] = None
    record["summary"] = summary
    record["rawText"] = raw_text
    return record


# ---------- structured replies ----------

def parse_structured(text: Optional[str], schema: FieldSchema) -> ParseResult:
    raw = text or ""
    try:
        data = load_json_object(raw)
    except ValueError as e:
        logger.warning("Could not parse JSON from model reply: %s", e)
        return Err(reason=str(e), raw_text=raw)

    return Ok(record_from_object(data, schema, raw_text=raw))


def record_from_object(data: Dict[str, Any], schema: FieldSchema, raw_text: str = "") -> Dict[str, Any]:
    """Default and coerce every schema field of an already-decoded JSON object."""
    record = empty_record(schema, raw_text=raw_text)
    record["isRelevant"] = coerce_bool(data.get("isRelevant"))
    for name in schema.numeric_fields:
        record[name] = coerce_number(data.get(name))
    for name in schema.text_fields:
        record[name] = coerce_text(data.get(name))
    summary = data.get("summary")
    record["summary"] = summary if isinstance(summary, str) else ""
    return record


def to_record(result: ParseResult, schema: FieldSchema) -> Dict[str, Any]:
    if isinstance(result, Ok):
        return result.record
    # unrecognized reading: keep the raw reply as the summary
    return empty_record(schema, summary=result.raw_text, raw_text=result.raw_text)


def normalize_reply(text: Optional[str], schema: FieldSchema) -> Dict[str, Any]:
    return to_record(parse_structured(text, schema), schema)


# ---------- number-only replies ----------

def extract_number(text: Optional[str]) -> Optional[int]:
    """
    Pick the counter value out of a number-only reply.

    Thousands separators and whitespace are removed first, then among all
    digit runs the largest run of exactly 4 digits wins, else 3, else 2,
    else the largest run of any length. None if there are no digits.
    """
    if not text:
        return None
    compact = re.sub(r"\s+", "", text.replace(",", ""))
    runs = DIGIT_RUN_RE.findall(compact)
    if not runs:
        return None

    for length in PREFERRED_RUN_LENGTHS:
        sized = [int(r) for r in runs if len(r) == length]
        if sized:
            return max(sized)
    return max(int(r) for r in runs)
