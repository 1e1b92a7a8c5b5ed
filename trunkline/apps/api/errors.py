from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from trunkline.apps.api.response import error_response, is_versioned_request
from trunkline.core.errors import (
    DuplicateEntity,
    EntityInUse,
    EntityNotFound,
    InvalidCredentialTransition,
    ProviderConfigError,
    ProviderProvisioningFailed,
    ResolutionError,
    TrunklineError,
    UnknownPlan,
    ValidationFailed,
)


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
}

# Most specific class first; the first isinstance match wins.
_ERROR_STATUS: tuple[tuple[type[TrunklineError], int], ...] = (
    (ValidationFailed, 422),
    (EntityNotFound, 404),
    (EntityInUse, 409),
    (DuplicateEntity, 409),
    (InvalidCredentialTransition, 409),
    (UnknownPlan, 422),
    (ResolutionError, 422),
    (ProviderProvisioningFailed, 502),
    (ProviderConfigError, 500),
)


def status_for_error(exc: TrunklineError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def _envelope(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    if not is_versioned_request(request):
        legacy = {"code": code, "message": message, **(details or {})}
        return JSONResponse(content={"detail": legacy}, status_code=status_code, headers=headers)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


async def trunkline_error_handler(request: Request, exc: TrunklineError) -> JSONResponse:
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error("request_failed path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return _envelope(request, status_code, exc.code, exc.message, exc.details or None)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    return _envelope(request, exc.status_code, code, message, details, exc.headers)


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    return _envelope(request, exc.status_code, code, message, details, exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Request-shape errors from pydantic, distinct from domain validation violations.
    return _envelope(
        request,
        422,
        "REQUEST_VALIDATION_ERROR",
        "Validation error",
        {"errors": jsonable_encoder(exc.errors())},
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Never leak SQL to clients.
    logger.exception("database_error path=%s", request.url.path)
    return _envelope(request, 500, "DATABASE_ERROR", "Database error")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error path=%s", request.url.path)
    return _envelope(request, 500, "INTERNAL_ERROR", "Internal server error")
