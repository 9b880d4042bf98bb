from typing import cast

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from arena.core.db import STORE_UNAVAILABLE_MESSAGE
from arena.core.enums import ErrorKind
from arena.core.errors import BattleError, StoreUnavailableError
from arena.schemas.common import APIResponse, ErrorDetail


def http_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(HTTPException, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=APIResponse(status="error", message=exc.detail).model_dump(),
    )


def battle_error_handler(request: Request, exc: Exception) -> JSONResponse:
    exc = cast(BattleError, exc)
    if exc.kind == ErrorKind.FATAL:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")

    detail = ErrorDetail(code=exc.code, kind=exc.kind, retryable=exc.retryable)
    return JSONResponse(
        status_code=exc.status_code,
        content=APIResponse(status="error", message=exc.message, data=detail).model_dump(
            mode="json"
        ),
    )


def validation_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(RequestValidationError, exc)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=APIResponse(
            status="error",
            message="Validation error",
            data=[
                {"loc": err["loc"], "msg": err["msg"], "type": err["type"]} for err in exc.errors()
            ],
        ).model_dump(),
    )


def general_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error("Unhandled error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=APIResponse(status="error", message="Internal server error").model_dump(),
    )


def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).warning(f"{request.method} {request.url.path}: store unavailable")
    return battle_error_handler(request, StoreUnavailableError(STORE_UNAVAILABLE_MESSAGE))
