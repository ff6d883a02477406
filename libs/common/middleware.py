"""Observability middleware for the portal services.

Every request gets a request ID (propagated from ``X-Request-ID`` when the
browser or an edge proxy sends one), a timing measurement, and a start and a
completion log line carrying the service name.

Usage:
    from libs.common.middleware import add_observability_middleware

    app = FastAPI()
    add_observability_middleware(app, service="portal")
"""
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)

QUIET_PATHS = frozenset({"/health"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request context for log correlation and log each request once."""

    def __init__(self, app: ASGIApp, service: str):
        super().__init__(app)
        self.service = service

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get("X-Request-ID"),
            path=request.url.path,
            method=request.method,
        )
        quiet = request.url.path in QUIET_PATHS
        started = time.perf_counter()

        if not quiet:
            logger.info(
                "Request started",
                extra={"extra_fields": {"service": self.service}},
            )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Request failed with unhandled exception",
                extra={
                    "extra_fields": {
                        "service": self.service,
                        "duration_ms": _elapsed_ms(started),
                    }
                },
            )
            raise
        else:
            if not quiet:
                log = logger.warning if response.status_code >= 400 else logger.info
                log(
                    "Request completed",
                    extra={
                        "extra_fields": {
                            "service": self.service,
                            "status_code": response.status_code,
                            "duration_ms": _elapsed_ms(started),
                        }
                    },
                )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_request_context()


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def add_observability_middleware(app: FastAPI, service: str) -> None:
    """
    Configure logging and install the request context middleware on ``app``.
    """
    configure_logging()
    app.add_middleware(RequestContextMiddleware, service=service)
    logger.info("Observability middleware initialized for %s", service)
