# backend/utils.py

import base64
import binascii
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import cv2
import numpy as np

DEFAULT_MIME = "image/jpeg"
DATA_URL_RE = re.compile(r"^data:([^;,]+)[;,]")

# Client-side downscale before upload
MAX_UPLOAD_SIDE = 1200
UPLOAD_JPEG_QUALITY = 85


def fixed_zone(offset_hours: float) -> timezone:
    return timezone(timedelta(hours=offset_hours))


def format_local(dt: datetime, pattern: str, offset_hours: float) -> str:
    """
    Format an aware datetime in a fixed display zone.
    Supported patterns: "HH:mm", "HH:mm:ss", "MMM d, HH:mm:ss",
    "yyyy-MM-dd HH:mm:ss". Anything else -> ISO 8601.
    Naive datetimes are taken to be UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    local = dt.astimezone(fixed_zone(offset_hours))

    if pattern == "HH:mm":
        return local.strftime("%H:%M")
    if pattern == "HH:mm:ss":
        return local.strftime("%H:%M:%S")
    if pattern == "MMM d, HH:mm:ss":
        return f"{local.strftime('%b')} {local.day}, {local.strftime('%H:%M:%S')}"
    if pattern == "yyyy-MM-dd HH:mm:ss":
        return local.strftime("%Y-%m-%d %H:%M:%S")
    return local.isoformat()


def build_timestamp(date_str: str, time_str: str, offset_hours: float) -> datetime:
    """'2025-11-28' + '14:05' in the display zone -> aware datetime."""
    try:
        naive = datetime.strptime(f"{date_str.strip()} {time_str.strip()}", "%Y-%m-%d %H:%M")
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid date/time: {date_str!r} {time_str!r}") from e
    return naive.replace(tzinfo=fixed_zone(offset_hours))


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def split_data_url(image: str) -> Tuple[str, str]:
    """
    Accept a data URL or bare base64 and return (mime_type, base64_payload).
    Whitespace inside the payload is removed.
    """
    mime = DEFAULT_MIME
    match = DATA_URL_RE.match(image)
    if match:
        mime = match.group(1)
    payload = image.split(",", 1)[1] if "," in image else image
    return mime, re.sub(r"\s", "", payload)


def estimated_size(b64: str) -> int:
    """Decoded length implied by the base64 text length, without decoding it."""
    padding = len(b64) - len(b64.rstrip("="))
    return max(0, len(b64) * 3 // 4 - padding)


def decoded_size(b64: str) -> int:
    """Validate base64 and return the decoded length in bytes."""
    try:
        return len(base64.b64decode(b64, validate=True))
    except (binascii.Error, ValueError) as e:
        raise ValueError("Image payload is not valid base64") from e


def downscale_to_data_url(
    image_bytes: bytes,
    max_side: int = MAX_UPLOAD_SIDE,
    quality: int = UPLOAD_JPEG_QUALITY,
) -> Optional[str]:
    """
    Decode an uploaded photo, shrink its longer side to max_side and
    re-encode as a JPEG data URL. None if the bytes are not an image.
    """
    buf = np.frombuffer(image_bytes, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if img is None or img.size == 0:
        return None

    h, w = img.shape[:2]
    longest = max(h, w)
    if longest > max_side:
        scale = max_side / float(longest)
        img = cv2.resize(img, (int(round(w * scale)), int(round(h * scale))), interpolation=cv2.INTER_AREA)

    success, encoded = cv2.imencode(".jpg", img, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not success:
        return None
    b64 = base64.b64encode(encoded.tobytes()).decode("ascii")
    return f"data:{DEFAULT_MIME};base64,{b64}"
