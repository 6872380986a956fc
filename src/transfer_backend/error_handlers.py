"""Unified error responses.

Every failure is returned as ``{error, message, request_id, details}``. Domain errors
from the share service are translated to HTTP statuses here, so routers never catch
them themselves.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import cast

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from transfer_backend.errors import (
    INVALID_CREDENTIAL_MESSAGE,
    ConflictError,
    InvalidCredentialError,
    KeyDerivationError,
    LocalIndexError,
    NetworkError,
    NotFoundError,
    ShareExpiredError,
    ShareNotFoundError,
    StoreUnavailableError,
    TransferError,
)
from transfer_backend.schemas import ErrorResponse

logger = logging.getLogger(__name__)

# First match wins; keep subclasses ahead of their bases.
_TRANSFER_ERROR_STATUS: tuple[tuple[type[TransferError], int, str], ...] = (
    (ShareNotFoundError, 404, "share_not_found"),
    (NotFoundError, 404, "not_found"),
    (InvalidCredentialError, 403, "invalid_credential"),
    (ShareExpiredError, 410, "share_expired"),
    (StoreUnavailableError, 503, "store_unavailable"),
    (ConflictError, 409, "conflict"),
    (NetworkError, 502, "upstream_error"),
    (KeyDerivationError, 400, "bad_request"),
    (LocalIndexError, 500, "local_index_error"),
)


def _map_http_status_to_error(status_code: int) -> str:
    mapping: dict[int, str] = {
        400: "bad_request",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        410: "gone",
        413: "payload_too_large",
        422: "validation_error",
        502: "upstream_error",
        503: "service_unavailable",
    }
    return mapping.get(status_code, f"http_{status_code}")


def _classify_transfer_error(exc: TransferError) -> tuple[int, str]:
    for exc_type, status_code, error in _TRANSFER_ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code, error
    return 500, "internal_error"


def _error_response(
    request: Request,
    *,
    status_code: int,
    error: str,
    message: str,
    details: object | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    payload = ErrorResponse(
        error=error,
        message=message,
        request_id=getattr(request.state, "request_id", None),
        details=details,
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(payload, exclude_none=True),
        headers=headers,
    )


async def _transfer_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    transfer_exc = cast(TransferError, exc)
    status_code, error = _classify_transfer_error(transfer_exc)
    if status_code >= 500:
        logger.warning(
            "share operation failed path=%s error=%s", request.url.path, error, exc_info=exc
        )

    # The same wording for a bad id and a bad passcode.
    if isinstance(transfer_exc, InvalidCredentialError):
        message = INVALID_CREDENTIAL_MESSAGE
    else:
        message = str(transfer_exc) or error
    return _error_response(request, status_code=status_code, error=error, message=message)


async def _http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_exc = cast(StarletteHTTPException, exc)
    detail = http_exc.detail
    return _error_response(
        request,
        status_code=http_exc.status_code,
        error=_map_http_status_to_error(http_exc.status_code),
        message=detail if isinstance(detail, str) else "Request failed",
        details=None if isinstance(detail, str) else detail,
        headers=getattr(http_exc, "headers", None),
    )


async def _validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return _error_response(
        request,
        status_code=422,
        error="validation_error",
        message="Request validation error",
        details=cast(RequestValidationError, exc).errors(),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled exception method=%s path=%s", request.method, request.url.path, exc_info=exc
    )
    return _error_response(
        request, status_code=500, error="internal_error", message="Internal server error"
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TransferError, _transfer_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
