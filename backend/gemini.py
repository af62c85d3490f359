# backend/gemini.py

import logging
from typing import Any, Dict, Optional

import requests

from . import config
from .errors import ErrorCode, OCRServiceError

logger = logging.getLogger(__name__)

BLOCKED_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"}


def build_payload(prompt: str, image_b64: str, mime_type: str) -> Dict[str, Any]:
    return {
        "contents": [
            {
                "parts": [
                    {"text": prompt},
                    {"inline_data": {"mime_type": mime_type, "data": image_b64}},
                ]
            }
        ],
        "generationConfig": {"temperature": 0},
    }


def classify_http_error(status_code: int, body_text: str) -> OCRServiceError:
    """Map a failed generateContent call to one of the proxy's error codes."""
    text = body_text or ""
    lowered = text.lower()

    if "api_key_invalid" in lowered or "api key not valid" in lowered or status_code in (401, 403):
        code = ErrorCode.API_KEY_INVALID
    elif status_code == 429 or "resource_exhausted" in lowered or "quota" in lowered:
        code = ErrorCode.QUOTA_EXCEEDED
    elif status_code == 413 or "too large" in lowered or "payload size" in lowered:
        code = ErrorCode.IMAGE_TOO_LARGE
    elif "safety" in lowered:
        code = ErrorCode.SAFETY_BLOCKED
    elif status_code == 400:
        code = ErrorCode.INVALID_REQUEST
    else:
        code = ErrorCode.SERVER_ERROR
    return OCRServiceError(code, details=text[:500] or f"HTTP {status_code}")


def extract_text(result: Dict[str, Any]) -> str:
    """
    Pull the reply text out of a generateContent response.
    Raises SAFETY_BLOCKED if the prompt or the answer was blocked.
    """
    feedback = result.get("promptFeedback") or {}
    block_reason = feedback.get("blockReason")
    if block_reason:
        raise OCRServiceError(ErrorCode.SAFETY_BLOCKED, details=str(block_reason))

    candidates = result.get("candidates") or []
    if not candidates:
        return ""

    first = candidates[0] or {}
    if first.get("finishReason") in BLOCKED_FINISH_REASONS:
        raise OCRServiceError(ErrorCode.SAFETY_BLOCKED, details=str(first.get("finishReason")))

    parts = (first.get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()


def generate_content(
    prompt: str,
    image_b64: str,
    mime_type: str,
    api_key: str,
    model: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Send one image + prompt to Gemini and return the reply text."""
    model = model or config.GEMINI_MODEL
    url = f"{config.GEMINI_API_URL.rstrip('/')}/models/{model}:generateContent"

    logger.info("Calling Gemini model=%s image_chars=%d", model, len(image_b64))
    try:
        resp = requests.post(
            url,
            params={"key": api_key},
            json=build_payload(prompt, image_b64, mime_type),
            headers={"Content-Type": "application/json"},
            timeout=timeout or config.GEMINI_TIMEOUT_SEC,
        )
    except requests.exceptions.RequestException as e:
        logger.error("Gemini request failed: %s", e)
        raise OCRServiceError(ErrorCode.SERVER_ERROR, details=str(e)) from e

    if not resp.ok:
        err = classify_http_error(resp.status_code, resp.text)
        logger.error("Gemini returned HTTP %s -> %s", resp.status_code, err.code.value)
        raise err

    try:
        result = resp.json()
    except ValueError as e:
        raise OCRServiceError(ErrorCode.SERVER_ERROR, details="Gemini response is not JSON") from e

    text = extract_text(result)
    logger.info("Gemini reply: %s", text[:200])
    return text
