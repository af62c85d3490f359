# backend/main.py

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config, gemini
from .config import FieldSchema
from .errors import ErrorCode, OCRServiceError
from .normalizer import extract_number, normalize_reply
from .prompts import NUMBER_PROMPT, structured_prompt
from .rate import compute_rate
from .schemas import ErrorResponse, NumberResponse, OCRRequest
from .utils import decoded_size, estimated_size, now_utc, split_data_url

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Production Counter OCR Backend",
    description="Forwards counter photos to Gemini and returns normalized production readings.",
    version="1.0.0",
)

# === CORS so the dashboard can talk to this ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "NO_IMAGE / INVALID_REQUEST"},
    403: {"model": ErrorResponse, "description": "API_KEY_INVALID"},
    413: {"model": ErrorResponse, "description": "IMAGE_TOO_LARGE"},
    429: {"model": ErrorResponse, "description": "QUOTA_EXCEEDED"},
    500: {"model": ErrorResponse, "description": "API_KEY_MISSING / SERVER_ERROR"},
}


def error_response(err: OCRServiceError) -> JSONResponse:
    log = logger.info if err.is_soft else logger.error
    log("[OCR API] %s: %s", err.code.value, err.details or err.message)
    return JSONResponse(status_code=err.http_status, content=err.to_dict())


@app.exception_handler(RequestValidationError)
async def invalid_request_handler(request: Request, exc: RequestValidationError):
    return error_response(OCRServiceError(ErrorCode.INVALID_REQUEST, details=str(exc.errors())))


def prepare_image(image: Optional[str]) -> Tuple[str, str]:
    """Validate the request image and return (base64_payload, mime_type)."""
    if not image or not image.strip():
        raise OCRServiceError(ErrorCode.NO_IMAGE)

    if config.get_api_key() is None:
        raise OCRServiceError(ErrorCode.API_KEY_MISSING)

    mime, b64 = split_data_url(image)
    # reject oversized payloads before decoding them
    estimate = estimated_size(b64)
    if estimate > config.MAX_IMAGE_BYTES:
        raise OCRServiceError(
            ErrorCode.IMAGE_TOO_LARGE,
            details=f"~{estimate} bytes (limit {config.MAX_IMAGE_BYTES})",
        )
    try:
        size = decoded_size(b64)
    except ValueError as e:
        raise OCRServiceError(ErrorCode.INVALID_REQUEST, details=str(e)) from e
    if size == 0:
        raise OCRServiceError(ErrorCode.NO_IMAGE)
    if size > config.MAX_IMAGE_BYTES:
        raise OCRServiceError(
            ErrorCode.IMAGE_TOO_LARGE,
            details=f"{size} bytes (limit {config.MAX_IMAGE_BYTES})",
        )
    logger.info("[OCR API] image mime=%s chars=%d bytes=%d", mime, len(b64), size)
    return b64, mime


def current_schema() -> FieldSchema:
    """The deployed field schema; a misconfigured FIELD_SCHEMA is a SERVER_ERROR."""
    try:
        return config.get_schema()
    except ValueError as e:
        raise OCRServiceError(ErrorCode.SERVER_ERROR, details=str(e)) from e


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def rate_fields(payload: OCRRequest, current_value: Optional[int], threshold: float) -> Dict[str, Any]:
    """rate/status against the caller's previous reading, if one was sent."""
    if payload.previousValue is None or payload.previousTimestamp is None:
        return {}
    current_ts = _aware(payload.timestamp) if payload.timestamp else now_utc()
    result = compute_rate(
        current_value,
        current_ts,
        payload.previousValue,
        _aware(payload.previousTimestamp),
        threshold,
    )
    return {"rate": result.rate, "status": result.status}


def ask_model(payload: OCRRequest, prompt: str) -> str:
    b64, mime = prepare_image(payload.image)
    return gemini.generate_content(prompt, b64, mime, api_key=config.get_api_key())


@app.get("/")
def root():
    try:
        schema = current_schema()
    except OCRServiceError as e:
        return error_response(e)
    return {
        "status": "ok",
        "message": "Production counter OCR backend running.",
        "schema": schema.name,
    }


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.post("/api/ocr", responses=ERROR_RESPONSES)
def ocr(payload: OCRRequest):
    """
    Structured extraction with the deployed field schema.
    Unparseable model replies come back as an unrecognized reading
    (isRelevant=false, summary = raw reply), not as an error.
    """
    logger.info("[OCR API] request received")
    try:
        schema = current_schema()
        text = ask_model(payload, structured_prompt(schema))
        if not text:
            raise OCRServiceError(ErrorCode.NO_TEXT)
    except OCRServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("[OCR API] unexpected failure")
        return error_response(OCRServiceError(ErrorCode.SERVER_ERROR, details=str(e)))

    record = normalize_reply(text, schema)
    if record["isRelevant"]:
        record.update(rate_fields(payload, record.get(schema.rate_field), schema.normal_rate_threshold))
    logger.info("[OCR API] relevant=%s summary=%s", record["isRelevant"], record["summary"][:80])
    return record


@app.post("/api/ocr/number", responses=ERROR_RESPONSES)
def ocr_number(payload: OCRRequest):
    """Bare counter value: {"number": int} or a NO_NUMBERS advisory."""
    logger.info("[OCR API] number request received")
    try:
        schema = current_schema()
        text = ask_model(payload, NUMBER_PROMPT)
        if not text:
            raise OCRServiceError(ErrorCode.NO_TEXT)
        number = extract_number(text)
        if number is None:
            raise OCRServiceError(ErrorCode.NO_NUMBERS, details=text[:200])
    except OCRServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("[OCR API] unexpected failure")
        return error_response(OCRServiceError(ErrorCode.SERVER_ERROR, details=str(e)))

    body = NumberResponse(number=number, rawText=text, **rate_fields(payload, number, schema.normal_rate_threshold))
    return body.model_dump()
