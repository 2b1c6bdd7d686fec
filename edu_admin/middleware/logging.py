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

from edu_admin.config import settings

# Request id of the request being handled, "-" outside a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"

# Paths not worth a log line per hit
QUIET_PATHS = ("/", "/api/docs", "/api/openapi.json")

SLOW_REQUEST_SECONDS = 2.0


class RequestIdFilter(logging.Filter):
    """Stamp every record with the current request id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logging():
    """
    Configure application logging.

    Records go to stdout and, when LOG_FILE is set, to that file. Every
    record carries the id of the request it was logged under.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        os.makedirs(Path(settings.LOG_FILE).parent, exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    request_id_filter = RequestIdFilter()
    for handler in handlers:
        handler.addFilter(request_id_filter)

    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers)

    # Third-party libraries only report problems
    for name in ("uvicorn", "sqlalchemy", "alembic", "httpx", "cloudinary", "passlib"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("edu_admin")
    logger.setLevel(log_level)
    return logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each API request with its status, duration and request id."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = logging.getLogger("edu_admin.request")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        request.state.request_id = request_id
        start_time = time.time()

        quiet = request.url.path in QUIET_PATHS
        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(
                f"Request failed: {request.method} {request.url.path} [error: {str(e)}]",
                exc_info=True
            )
            raise
        finally:
            request_id_var.reset(token)

        duration = time.time() - start_time
        response.headers["X-Request-ID"] = request_id

        if duration > SLOW_REQUEST_SECONDS:
            self.logger.warning(
                f"Slow request: {request.method} {request.url.path} "
                f"[status: {response.status_code}] [duration: {duration:.3f}s] [request_id: {request_id}]"
            )
        elif not quiet:
            self.logger.info(
                f"{request.method} {request.url.path} "
                f"[status: {response.status_code}] [duration: {duration:.3f}s] "
                f"[client: {request.client.host if request.client else 'unknown'}] [request_id: {request_id}]"
            )

        return response


def add_logging_middleware(app: FastAPI):
    """Add request logging middleware to the FastAPI app."""
    app.add_middleware(RequestLoggingMiddleware)
