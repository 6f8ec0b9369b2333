"""Application exceptions and handlers for consistent error responses.

The onboarding exceptions double as the failure taxonomy of a step
submission: the engine raises them, the routers let them propagate, and
the handlers below turn them into the standard error envelope.
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class GovReadyException(Exception):
    """Base exception for GovReady application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Union[dict, list, None] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class StepValidationError(GovReadyException):
    """Step payload rejected by its schema (locally or by the backend)."""

    def __init__(self, errors: list[dict], message: str = "Validation error"):
        self.errors = errors
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
            details={"errors": errors},
        )


class TransientBackendError(GovReadyException):
    """Network failure, timeout or 5xx unrelated to step ordering.

    Never retried automatically; the user retries with the preserved draft.
    """

    def __init__(self, message: str = "Backend temporarily unavailable. Please try again."):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="BACKEND_UNAVAILABLE",
            details={"retryable": True},
        )


class OrderingConflict(GovReadyException):
    """Backend rejected a step because a prerequisite entity is missing.

    ``shape`` identifies which backend error was seen (see
    ``services.progression.ErrorShape``).
    """

    def __init__(self, shape: str, message: str = "A prerequisite for this step is missing"):
        self.shape = shape
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="ORDERING_CONFLICT",
            details={"shape": shape},
        )


class MalformedServerResponse(GovReadyException):
    """Backend answered 2xx without the expected ``state`` object."""

    def __init__(self, body: object = None):
        self.body = body
        super().__init__(
            message="Backend returned an unexpected response",
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="MALFORMED_BACKEND_RESPONSE",
        )


class BackendRequestError(GovReadyException):
    """Any other backend 4xx, passed through with its status."""

    def __init__(self, status_code: int, message: str = "Backend rejected the request"):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="BACKEND_ERROR",
        )


class StepNotNavigable(GovReadyException):
    """Requested step sits behind an incomplete blocking step."""

    def __init__(self, step: str):
        super().__init__(
            message=f"Complete the earlier required steps before {step}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="STEP_LOCKED",
        )


class SubmissionInProgress(GovReadyException):
    """A step submission is already in flight for this session."""

    def __init__(self):
        super().__init__(
            message="A submission is already in progress",
            status_code=status.HTTP_409_CONFLICT,
            error_code="SUBMISSION_IN_PROGRESS",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
    """
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def govready_exception_handler(
    request: Request,
    exc: GovReadyException,
) -> JSONResponse:
    """Handle custom GovReady exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"GovReady exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(
        f"Validation error on {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": format_validation_errors(exc.errors())},
    )


def format_validation_errors(errors) -> list[dict]:
    """Flatten pydantic error dicts into ``{field, message, type}`` rows."""
    formatted = []
    for error in errors:
        field = " -> ".join(str(loc) for loc in error.get("loc", ()))
        formatted.append({
            "field": field,
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        })
    return formatted


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    # Don't expose internal details
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(GovReadyException, govready_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
