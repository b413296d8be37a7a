"""Exception handlers for the FastAPI app."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from authcore.services.errors import AuthCoreError

LOGGER = logging.getLogger("authcore.api")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthCoreError)
    async def authcore_error_handler(request: Request, exc: AuthCoreError) -> JSONResponse:  # noqa: WPS430
        LOGGER.info(
            "request_rejected",
            extra={"path": request.url.path, "kind": exc.kind, "status_code": exc.status_code},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"type": exc.kind, "detail": str(exc), "data": jsonable_encoder(exc.data)},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(
            status_code=400,
            content={"type": "BAD_REQUEST", "detail": jsonable_encoder(exc.errors())},
        )
