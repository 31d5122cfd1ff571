"""Map delivery errors onto HTTP responses at the trigger boundary."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ValidationError

from delivery.errors import (
    EventPublishError,
    IllegalTransition,
    InvalidIdentifier,
    InvalidMessage,
    PermanentRecordMissing,
    TransientStoreError,
)

logger = structlog.get_logger(__name__)

# Most specific first: InvalidIdentifier and InvalidMessage are also ValueErrors
_STATUS_BY_ERROR = [
    (PermanentRecordMissing, 404),
    (IllegalTransition, 409),
    (InvalidIdentifier, 422),
    (InvalidMessage, 422),
    (ValidationError, 422),
    (TransientStoreError, 503),
    (EventPublishError, 503),
]


def _detail(exc: Exception):
    if isinstance(exc, ValidationError):
        return exc.messages
    return str(exc)


async def _handle_delivery_error(request: Request, exc: Exception) -> JSONResponse:
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            break
    else:
        status_code = 500

    if status_code >= 500:
        logger.error("Trigger failed", path=request.url.path, error=str(exc), status_code=status_code)
    else:
        logger.warning("Trigger rejected", path=request.url.path, error=str(exc), status_code=status_code)

    return JSONResponse(status_code=status_code, content={"detail": _detail(exc)})


def install_error_handlers(app: FastAPI) -> None:
    for error_cls, _ in _STATUS_BY_ERROR:
        app.add_exception_handler(error_cls, _handle_delivery_error)
