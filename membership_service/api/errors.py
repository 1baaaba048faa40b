"""Map exceptions onto JSON error bodies.

Domain errors render as ``{"error": message, "code": code}`` with the
status the error class carries.  Anything unexpected is logged with its
traceback and hidden behind a generic 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from membership_service.core.errors import ConflictError, MembershipServiceError

logger = logging.getLogger(__name__)


async def _domain_error(_request: Request, exc: MembershipServiceError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
        headers=headers,
    )


async def _integrity_error(_request: Request, exc: IntegrityError) -> JSONResponse:
    # Constraint names can leak table layout; log them, don't return them.
    logger.warning("Store precondition failed: %s", exc.orig)
    return JSONResponse(
        status_code=ConflictError.status_code,
        content={"error": "Conflicting update, please retry", "code": ConflictError.code},
    )


async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400, content={"error": "Validation error", "details": details}
    )


async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MembershipServiceError, _domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error)
