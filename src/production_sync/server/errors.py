"""Error envelopes for the HTTP surface.

Every error reply has the shape ``{"success": false, "error": "..."}``
plus optional extra keys.  ``install_error_handlers()`` maps the
package's exception taxonomy onto status codes:

===========================  ======
RecordValidationError        400
request body validation      400
AuthError (from the peer)    502
NotFoundError                404
ConflictError                409 (``existing`` carries the record)
BusyError                    409
SyncError                    502
===========================  ======
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import (
    BusyError,
    ConflictError,
    NotFoundError,
    RecordValidationError,
    SyncError,
)
from ..mapper import record_to_wire
from ..models import ProductionRecord

logger = logging.getLogger(__name__)


def build_error_response(
    status_code: int, message: str, **extra: Any
) -> JSONResponse:
    """Build a ``{success: false, error}`` JSON reply.

    Args:
        status_code: HTTP status.
        message: Human-readable error description.
        **extra: Additional top-level keys (e.g. ``existing``).
    """
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


async def _validation_error(request: Request, exc: RecordValidationError) -> JSONResponse:
    extra = {"field": exc.field} if exc.field else {}
    return build_error_response(status.HTTP_400_BAD_REQUEST, str(exc), **extra)


async def _request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid request")
    return build_error_response(
        status.HTTP_400_BAD_REQUEST, f"{loc}: {message}" if loc else message
    )


async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return build_error_response(exc.status_code, str(exc.detail))


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return build_error_response(status.HTTP_404_NOT_FOUND, str(exc))


async def _conflict(request: Request, exc: ConflictError) -> JSONResponse:
    existing = exc.existing
    if isinstance(existing, ProductionRecord):
        existing = record_to_wire(existing)
    return build_error_response(
        status.HTTP_409_CONFLICT, str(exc), existing=existing
    )


async def _busy(request: Request, exc: BusyError) -> JSONResponse:
    return build_error_response(status.HTTP_409_CONFLICT, str(exc))


async def _sync_error(request: Request, exc: SyncError) -> JSONResponse:
    logger.warning("Peer error while serving %s: %s", request.url.path, exc)
    return build_error_response(
        status.HTTP_502_BAD_GATEWAY,
        str(exc),
        direction=exc.direction,
        retryable=exc.retryable,
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the taxonomy handlers on *app*."""
    app.add_exception_handler(HTTPException, _http_error)
    app.add_exception_handler(RecordValidationError, _validation_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(ConflictError, _conflict)
    app.add_exception_handler(BusyError, _busy)
    app.add_exception_handler(SyncError, _sync_error)
