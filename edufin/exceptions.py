"""
Domain errors raised by the service layer.

Each error kind carries the HTTP status it is rendered with, so routes never
translate them by hand; ``register_exception_handlers`` wires the rendering
into the FastAPI app.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class EduFinError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be processed"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class UnauthorizedError(EduFinError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"


class ForbiddenError(EduFinError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not authorized to perform this action"


class NotFoundError(EduFinError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class ConflictError(EduFinError):
    # API clients expect 400 for state conflicts, not 409
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Action conflicts with the current state"


class ValidationError(EduFinError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


async def edufin_error_handler(request: Request, exc: EduFinError):
    logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid or missing fields", "errors": jsonable_errors(exc)},
    )


async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred. Please try again later."},
    )


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(EduFinError, edufin_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)
