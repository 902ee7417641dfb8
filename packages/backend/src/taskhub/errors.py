"""Error taxonomy shared by the HTTP, webhook and realtime layers.

Learn: Services raise these instead of HTTPException so the same error
can end up as an HTTP response (via register_exception_handlers) or as
a realtime `error` frame. Each class carries the status code it maps to
and a message that is safe to show the caller.

"No handler registered" is deliberately NOT an error — webhook
processing reports it as ProcessResult(handled=False).
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


class TaskhubError(Exception):
    """Base class. `message` is returned to the caller verbatim."""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class ValidationError(TaskhubError):
    status_code = 400


class PayloadTooLargeError(ValidationError):
    status_code = 413


class AuthenticationError(TaskhubError):
    status_code = 401


class AuthorizationError(TaskhubError):
    status_code = 403


class SecretNotConfiguredError(AuthorizationError):
    """No secret resolvable for a webhook source."""

    status_code = 401


class InvalidSignatureError(AuthorizationError):
    """Webhook signature missing or does not match."""

    status_code = 401


class NotFoundError(TaskhubError):
    status_code = 404


class HandlerError(TaskhubError):
    """A registered callback raised. The original error stays in the logs."""

    status_code = 500

    def __init__(self, event_type: str, cause: BaseException):
        super().__init__("Failed to process webhook")
        self.event_type = event_type
        self.cause = cause


def register_exception_handlers(app: FastAPI) -> None:
    """Render TaskhubError subclasses as the standard failure envelope."""

    @app.exception_handler(TaskhubError)
    async def _taskhub_error(request: Request, exc: TaskhubError):
        if exc.status_code >= 500:
            logger.error(
                "http.server_error",
                path=request.url.path,
                error_type=type(exc).__name__,
            )
        headers = None
        if isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message},
            headers=headers,
        )
