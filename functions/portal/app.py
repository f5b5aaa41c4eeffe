"""
FastAPI application entry point for the portal service.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from portal.config import get_settings
from portal.routes import router
from shared.errors import (
    IllegalTransition,
    NotAuthenticated,
    NotFoundError,
    PortalError,
    StoreError,
    TokenAlreadyUsed,
    TokenExpired,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases.
ERROR_STATUS_CODES: list[tuple[type[PortalError], int]] = [
    (NotAuthenticated, 401),
    (ValidationError, 400),
    (NotFoundError, 404),
    (IllegalTransition, 409),
    (TokenAlreadyUsed, 409),
    (TokenExpired, 410),
    (StoreError, 503),
]


def status_code_for(error: PortalError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="FMS Portal", version="0.1.0")
    app.add_exception_handler(PortalError, portal_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
