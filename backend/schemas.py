from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OCRRequest(BaseModel):
    image: Optional[str] = None
    previousValue: Optional[float] = Field(default=None, ge=0)
    previousTimestamp: Optional[datetime] = None
    timestamp: Optional[datetime] = None


class NumberResponse(BaseModel):
    number: Optional[int]
    rawText: str = ""
    rate: Optional[int] = None
    status: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[str] = None
