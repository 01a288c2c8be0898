"""
Kernel exception -> HTTP response mapping.

Every InventoryKernelError becomes ``{"code": ..., "message": ...}`` plus
the exception's public attributes.  Request-body validation failures use
the same shape with code VALIDATION_ERROR.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from inventory_kernel.exceptions import (
    AllocationError,
    ConstraintViolationError,
    IdempotencyConflictError,
    ImmutabilityViolationError,
    InventoryKernelError,
    NotFoundError,
    RetryableError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger

logger = get_logger("api.errors")

# First match wins; order subclasses before their bases.
STATUS_BY_ERROR: tuple[tuple[type[InventoryKernelError], int], ...] = (
    (NotFoundError, 404),
    (ValidationError, 422),
    (AllocationError, 409),
    (ConstraintViolationError, 409),
    (IdempotencyConflictError, 409),
    (ImmutabilityViolationError, 409),
    (RetryableError, 503),
)


def status_for(exc: InventoryKernelError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_body(exc: InventoryKernelError) -> dict:
    body = {"code": exc.code, "message": str(exc)}
    for key, value in vars(exc).items():
        if not key.startswith("_") and key not in body:
            body[key] = value
    return jsonable_encoder(body)


async def _kernel_error_handler(request: Request, exc: InventoryKernelError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "request_failed",
        extra={
            "path": request.url.path,
            "status_code": status_code,
            "error_code": exc.code,
        },
    )
    headers = {"Retry-After": "1"} if isinstance(exc, RetryableError) else None
    return JSONResponse(status_code=status_code, content=error_body(exc), headers=headers)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "code": ValidationError.code,
            "message": "Request validation failed",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InventoryKernelError, _kernel_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
