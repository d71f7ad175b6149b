# Error taxonomy and HTTP mapping

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger()


class ChatAnalyticsError(Exception):
    """Base error; subclasses carry the HTTP status they map to"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Internal server error"

    def __init__(self, message: str | None = None, headers: dict[str, str] | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.headers = headers


class ValidationError(ChatAnalyticsError):
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid request"


class Unauthorized(ChatAnalyticsError):
    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "Unauthorized"


class NotFound(ChatAnalyticsError):
    status_code = status.HTTP_404_NOT_FOUND
    public_message = "Not found"


class RateLimited(ChatAnalyticsError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    public_message = "You're sending messages too quickly. Please slow down and try again in a moment."


class StorageError(ChatAnalyticsError):
    """Store unreachable or query failed. Details stay in the server log."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Internal server error"


class StorageUnavailable(StorageError):
    """Connection pool exhausted; the caller may retry"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    public_message = "Service busy, please retry"


class UpstreamError(ChatAnalyticsError):
    status_code = status.HTTP_502_BAD_GATEWAY
    public_message = "The assistant is unavailable right now. Please try again shortly."


async def handle_app_error(request: Request, exc: ChatAnalyticsError) -> JSONResponse:
    if isinstance(exc, StorageError):
        # Internal detail is logged where it was raised; the body stays generic
        body = {"ok": False, "error": exc.public_message}
    else:
        body = {"ok": False, "error": exc.message}

    logger.warning(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters are reported as a 400 ValidationError"""
    fields = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        fields.append(f"{'.'.join(loc) or 'body'}: {error.get('msg', 'invalid')}")

    return await handle_app_error(request, ValidationError(f"Invalid request: {'; '.join(fields)}"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatAnalyticsError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
