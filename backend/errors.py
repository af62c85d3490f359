# backend/errors.py

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """
    Error identifiers shared by the OCR proxy and its clients.
    Each code carries (http_status, category, default user message).
    Categories:
      - config  : credentials / quota / request problems, shown as an error
      - content : nothing usable in the image, shown as an advisory
      - server  : unexpected failure
    """

    NO_IMAGE = "NO_IMAGE"
    API_KEY_MISSING = "API_KEY_MISSING"
    API_KEY_INVALID = "API_KEY_INVALID"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    SAFETY_BLOCKED = "SAFETY_BLOCKED"
    IMAGE_TOO_LARGE = "IMAGE_TOO_LARGE"
    INVALID_REQUEST = "INVALID_REQUEST"
    NO_TEXT = "NO_TEXT"
    NO_NUMBERS = "NO_NUMBERS"
    SERVER_ERROR = "SERVER_ERROR"

    @property
    def http_status(self) -> int:
        return _DETAILS[self][0]

    @property
    def category(self) -> str:
        return _DETAILS[self][1]

    @property
    def message(self) -> str:
        return _DETAILS[self][2]

    @property
    def is_soft(self) -> bool:
        return self.category == "content"


_DETAILS = {
    ErrorCode.NO_IMAGE: (400, "config", "No image data was provided."),
    ErrorCode.API_KEY_MISSING: (
        500, "config", "GEMINI_API_KEY is not set. Add it to the service environment."),
    ErrorCode.API_KEY_INVALID: (
        403, "config", "The API key is not valid. Set a correct GEMINI_API_KEY."),
    ErrorCode.QUOTA_EXCEEDED: (
        429, "config", "The API quota has been exceeded. Please try again later."),
    ErrorCode.SAFETY_BLOCKED: (
        200, "content", "The image was blocked by the safety filter. Please use a different image."),
    ErrorCode.IMAGE_TOO_LARGE: (413, "config", "The image is too large. Please use a smaller photo."),
    ErrorCode.INVALID_REQUEST: (400, "config", "The request could not be processed."),
    ErrorCode.NO_TEXT: (200, "content", "No text was recognized in the image."),
    ErrorCode.NO_NUMBERS: (200, "content", "No number was recognized in the image."),
    ErrorCode.SERVER_ERROR: (500, "server", "An internal server error occurred."),
}


class OCRServiceError(Exception):
    """Typed failure surfaced to the user."""

    def __init__(self, code: ErrorCode, message: Optional[str] = None, details: Optional[str] = None):
        self.code = code
        self.message = message or code.message
        self.details = details
        super().__init__(f"{code.value}: {self.message}")

    @property
    def http_status(self) -> int:
        return self.code.http_status

    @property
    def is_soft(self) -> bool:
        return self.code.is_soft

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code.value, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


def parse_error_code(value: Any) -> ErrorCode:
    try:
        return ErrorCode(str(value))
    except ValueError:
        return ErrorCode.SERVER_ERROR


def check_response(status_code: int, payload: Any) -> Dict[str, Any]:
    """
    Client side of the proxy contract.
    Any non-2xx status or any "error" field -> OCRServiceError.
    Otherwise the payload dict is returned unchanged.
    """
    body = payload if isinstance(payload, dict) else {}

    if body.get("error"):
        code = parse_error_code(body["error"])
        raise OCRServiceError(code, body.get("message") or None, body.get("details"))

    if not 200 <= status_code < 300:
        code = _code_for_status(status_code)
        raise OCRServiceError(code, body.get("message") or None, body.get("details"))

    if not isinstance(payload, dict):
        raise OCRServiceError(ErrorCode.SERVER_ERROR, details="Response body is not a JSON object")

    return payload


def _code_for_status(status_code: int) -> ErrorCode:
    if status_code == 403:
        return ErrorCode.API_KEY_INVALID
    if status_code == 413:
        return ErrorCode.IMAGE_TOO_LARGE
    if status_code == 429:
        return ErrorCode.QUOTA_EXCEEDED
    if 400 <= status_code < 500:
        return ErrorCode.INVALID_REQUEST
    return ErrorCode.SERVER_ERROR
