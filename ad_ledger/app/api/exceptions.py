from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import AuthenticationError, LedgerError


logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "request.failed",
                extra={"path": request.url.path, "error": exc.code, "detail": str(exc)},
            )
        headers = None
        if isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "detail": str(exc)},
            headers=headers,
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400, content={"error": "validation_error", "detail": str(exc)}
        )
