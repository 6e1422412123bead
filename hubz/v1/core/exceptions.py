import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from hubz.config.logging import add_request_context, get_logger

logger = get_logger(__name__)


class HubzException(Exception):
    """Base exception for the Hubz background subsystem."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(HubzException):
    """Raised when a resource is not found."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


class ConflictError(HubzException):
    """Raised when a resource is not in a state that allows the operation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_409_CONFLICT, details)


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: uuid.UUID):
        super().__init__(f"Background job not found: {job_id}", {"job_id": str(job_id)})


class InvalidJobTransitionError(ConflictError):
    """Raised when a job status change is not allowed by the state machine."""

    def __init__(self, job_id: uuid.UUID | None, current: str, target: str):
        super().__init__(
            f"Job cannot move from {current} to {target}",
            {
                "job_id": str(job_id) if job_id else None,
                "current": current,
                "target": target,
            },
        )


class JobNotRetryableError(ConflictError):
    def __init__(self, job_id: uuid.UUID, status_value: str, attempts: int, max_attempts: int):
        super().__init__(
            f"Job cannot be retried. Status: {status_value}, attempts: {attempts}/{max_attempts}",
            {
                "job_id": str(job_id),
                "status": status_value,
                "attempts": attempts,
                "max_attempts": max_attempts,
            },
        )


class HandlerNotRegisteredError(HubzException):
    def __init__(self, job_type: str):
        super().__init__(
            f"No handler registered for job type: {job_type}", details={"job_type": job_type}
        )


class RecipientNotFoundError(NotFoundError):
    def __init__(self, user_id: uuid.UUID):
        super().__init__(f"Recipient not found: {user_id}", {"user_id": str(user_id)})


class EmailDeliveryError(HubzException):
    """Raised when the email backend rejects a message."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, details)


class WebhookCallError(HubzException):
    """Raised when a webhook endpoint answers with a non-2xx status."""

    def __init__(self, url: str, status_code: int, body: str = ""):
        super().__init__(
            f"Webhook call failed with status {status_code}",
            status.HTTP_502_BAD_GATEWAY,
            {"url": url, "status_code": status_code, "body": body},
        )


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response envelope."""
    return {
        "ok": False,
        "error": {"message": message, "code": status_code, "details": details or {}},
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_success_response(
    data: Any, message: str | None = None, request_id: str | None = None
) -> dict[str, Any]:
    """Create standardized success response envelope."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error_json(
    request_id: str, status_code: int, message: str, details: dict[str, Any] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(status_code, message, details, request_id),
    )


async def hubz_exception_handler(request: Request, exc: HubzException) -> JSONResponse:
    """Domain errors keep their own status code and details."""
    request_id = _request_id(request)
    logger.error(
        "Application exception",
        exception=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        request_id=request_id,
    )
    return _error_json(request_id, exc.status_code, exc.message, exc.details)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Routing and framework errors (404, 405, ...) in the same envelope."""
    request_id = _request_id(request)
    logger.warning(
        "HTTP exception", status_code=exc.status_code, detail=exc.detail, request_id=request_id
    )
    return _error_json(request_id, exc.status_code, str(exc.detail))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = _request_id(request)
    logger.error(
        "Unhandled exception",
        exception=exc.__class__.__name__,
        message=str(exc),
        request_id=request_id,
        exc_info=True,
    )
    return _error_json(
        request_id, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every request with a correlation ID, in the log context and the response."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        add_request_context(request_id=request_id, method=request.method, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
