"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

logger = logging.getLogger("ledger.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found or belongs to another company."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AlreadySettledError(AppException):
    """Raised when a settlement targets an entry that is already fully paid."""

    def __init__(self, entry_id: int):
        super().__init__(
            message=f"Ledger entry {entry_id} is already fully paid",
            error_code="ERR_LEDGER_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"entry_id": entry_id}
        )


class InvalidAmountError(AppException):
    """Raised for non-positive settlement amounts."""

    def __init__(self, amount: Any):
        super().__init__(
            message="Settlement amount must be greater than zero",
            error_code="ERR_LEDGER_002",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"amount": amount}
        )


class EntryNotSettleableError(AppException):
    """Raised when the target entry cannot take a payment (wrong type or cancelled)."""

    def __init__(self, entry_id: int, reason: str):
        super().__init__(
            message=f"Ledger entry {entry_id} cannot be settled: {reason}",
            error_code="ERR_LEDGER_003",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"entry_id": entry_id, "reason": reason}
        )


class OverpaymentError(AppException):
    """Raised when the overpayment policy is 'reject' and the payment exceeds what is owed."""

    def __init__(self, entry_id: int, amount: float, remaining: float):
        super().__init__(
            message=f"Payment of {amount:.2f} exceeds the {remaining:.2f} outstanding on entry {entry_id}",
            error_code="ERR_LEDGER_004",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"entry_id": entry_id, "amount": amount, "remaining_amount": round(remaining, 2)}
        )


class ConcurrentUpdateError(AppException):
    """Raised when an optimistic version check fails during a write."""

    def __init__(self, resource: str, resource_id: Any = None):
        super().__init__(
            message=f"{resource} was modified concurrently, retry the operation",
            error_code="ERR_LEDGER_005",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "id": resource_id}
        )


class StoreUnavailableError(AppException):
    """Raised when the record store cannot be reached."""

    def __init__(self, message: str = "Record store unavailable"):
        super().__init__(
            message=message,
            error_code="ERR_STORE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                # Rejected input is not echoed; it may not be valid JSON (NaN)
                "errors": jsonable_encoder(exc.errors(), exclude={"input"})
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )


async def stale_data_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Optimistic lock failures that escaped a service are conflicts, not server errors."""
    logger.warning("Optimistic lock conflict on %s: %s", request.url.path, exc)
    return await app_exception_handler(request, ConcurrentUpdateError("Resource"))
