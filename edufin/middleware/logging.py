import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from edufin.config import settings

REQUEST_ID_HEADER = "X-Request-ID"

# Id of the request being served, attached to every log record emitted while serving it
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# Requests not worth a log line each
QUIET_PATHS = ("/api/docs", "/api/openapi.json")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logging():
    """
    Configure application logging.

    Log lines go to stdout and, when ``LOG_FILE`` is set, to that file as
    well. Every line carries the id of the request it was emitted for, so a
    payment or an approval can be traced back to the call that caused it.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        os.makedirs(Path(settings.LOG_FILE).parent, exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    for handler in handlers:
        handler.addFilter(RequestIdFilter())

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s',
        handlers=handlers,
    )

    # Set specific log levels for noisy libraries
    for noisy in ("uvicorn", "sqlalchemy", "alembic", "httpx", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger("edufin")
    logger.setLevel(log_level)
    return logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each API request with its outcome, duration and the acting user."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = logging.getLogger("edufin.request")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse the caller's id so a request can be followed across services
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        request.state.request_id = request_id

        try:
            quiet = request.url.path.startswith(QUIET_PATHS)
            start_time = time.perf_counter()

            if not quiet:
                self.logger.info(
                    f"Request started: {request.method} {request.url.path} "
                    f"[client: {request.client.host if request.client else 'unknown'}]"
                )

            try:
                response = await call_next(request)
            except Exception as e:
                self.logger.error(
                    f"Request failed: {request.method} {request.url.path} [error: {str(e)}]",
                    exc_info=True
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000

            if not quiet:
                # Set by the authentication dependency once the route has run
                user_id = getattr(request.state, "user_id", None)
                level = logging.WARNING if response.status_code >= 500 else logging.INFO
                self.logger.log(
                    level,
                    f"Request completed: {request.method} {request.url.path} "
                    f"[status: {response.status_code}] [duration: {duration_ms:.1f}ms] "
                    f"[user_id: {user_id}] [request_id: {request_id}]"
                )

            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            # The completion line above must still carry this request's id
            request_id_var.reset(token)


def add_logging_middleware(app: FastAPI):
    """Add request logging middleware to the FastAPI app."""
    app.add_middleware(RequestLoggingMiddleware)
