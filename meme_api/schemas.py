from typing import Literal

from pydantic import BaseModel

ErrorCode = Literal["invalid_request", "conversion_failed", "internal_error"]


class ErrorResponse(BaseModel):
    error: ErrorCode
    detail: str
    request_id: str | None = None


class HealthResponse(BaseModel):
    status: str
    service: str
