"""Global exception handlers so every service answers errors the same way."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from libs.common.cancellation import OperationCancelled
from libs.common.errors import PortalError
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    logger.warning(
        "%s: %s",
        type(exc).__name__,
        exc.message,
        extra={"extra_fields": {"details": exc.details}},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "code": type(exc).__name__,
            "request_id": get_request_id(),
        },
    )


async def cancelled_handler(request: Request, exc: OperationCancelled) -> JSONResponse:
    logger.warning("Request work cancelled: %s", exc.reason)
    return JSONResponse(
        status_code=504,
        content={
            "detail": "The request took too long to complete",
            "code": "TIMEOUT",
            "request_id": get_request_id(),
        },
    )


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortalError, portal_error_handler)
    app.add_exception_handler(OperationCancelled, cancelled_handler)
