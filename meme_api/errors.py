import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from meme_api.schemas import ErrorCode, ErrorResponse

logger = logging.getLogger("meme.errors")


class ConversionError(Exception):
    """Raised by an image converter that cannot turn its input into a PNG."""


class MemeApiError(Exception):
    status_code: int = 500
    code: ErrorCode = "internal_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidRequest(MemeApiError):
    status_code = 400
    code = "invalid_request"


class ConversionFailure(MemeApiError):
    status_code = 500
    code = "conversion_failed"


def _error_response(request: Request, status_code: int, code: ErrorCode, detail: str) -> JSONResponse:
    body = ErrorResponse(
        error=code,
        detail=detail,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_api_error(request: Request, exc: MemeApiError) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.code, exc.detail)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()})
    detail = f"invalid multipart field(s): {', '.join(f for f in fields if f) or 'body'}"
    return _error_response(request, 400, "invalid_request", detail)


async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> Response:
    # Multipart parse failures surface here as 400s.
    if exc.status_code == 400:
        return _error_response(request, 400, "invalid_request", str(exc.detail))
    return await http_exception_handler(request, exc)


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", extra={"path": request.url.path, "error": str(exc)})
    response = _error_response(request, 500, "internal_error", "internal server error")
    # Served outside the request middleware, so the id header is set here.
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        response.headers["x-request-id"] = request_id
    return response


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MemeApiError, _handle_api_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_error)
    app.add_exception_handler(Exception, _handle_unexpected)
