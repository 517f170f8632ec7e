"""
FastAPI exception handlers: every failure leaves the API as an ApplicationError body.
"""

from __future__ import annotations

import logging

import asyncpg
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import errors

logger = logging.getLogger(__name__)


def error_response(error: errors.ApplicationError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status or status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=jsonable_encoder(error.to_dict()),
    )


async def handle_application_error(request: Request, exc: errors.ApplicationError) -> JSONResponse:
    logger.warning("request_failed path=%s error=%s message=%s", request.url.path, exc.short_name, exc.message)
    return error_response(exc)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    formatted = errors.format_error(exc)
    if formatted.type is errors.ErrorType.SYSTEM:
        logger.exception("request_crashed path=%s", request.url.path, exc_info=exc)
    else:
        logger.warning("request_failed path=%s error=%s message=%s", request.url.path, formatted.short_name, formatted.message)
    return error_response(formatted)


async def handle_storage_error(request: Request, exc: asyncpg.PostgresError) -> JSONResponse:
    formatted = errors.format_error(exc)
    logger.warning(
        "storage_failed path=%s error=%s sqlstate=%s", request.url.path, formatted.short_name, getattr(exc, "sqlstate", None)
    )
    return error_response(formatted)


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return error_response(errors.no_end_point_error(request.url.path))
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return error_response(errors.no_end_point_error(f"{request.method} {request.url.path}"))
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(errors.bad_input_error(str(exc.errors())))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(errors.ApplicationError, handle_application_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(asyncpg.PostgresError, handle_storage_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
