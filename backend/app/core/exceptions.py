"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

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


class PricingValidationError(AppException):
    """Raised when pricing input is malformed (missing tier, bad auto price, unknown category)."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PRICING_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class DuplicatePricingError(AppException):
    """Raised when an active pricing record already exists for the same key."""

    def __init__(self, category: str, vehicle_type: str, vehicle_model: str, trip_type: str):
        super().__init__(
            message=f"Pricing for {vehicle_type} {vehicle_model} ({trip_type}) already exists",
            error_code="ERR_PRICING_DUPLICATE",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "category": category,
                "vehicle_type": vehicle_type,
                "vehicle_model": vehicle_model,
                "trip_type": trip_type
            }
        )


class PricingUnavailableError(AppException):
    """
    Raised by the API layer when resolution finds no pricing.

    The domain layer reports this condition as a None return; only the
    HTTP boundary turns it into an error response.
    """

    def __init__(self, details: Dict[str, Any] = None):
        super().__init__(
            message="No pricing found for the specified vehicle configuration",
            error_code="ERR_PRICING_UNAVAILABLE",
            status_code=status.HTTP_404_NOT_FOUND,
            details={
                **(details or {}),
                "suggestion": "Please contact support to set up pricing for this vehicle type"
            }
        )


class DistanceUnavailableError(AppException):
    """Raised when no distance can be produced for a trip."""

    def __init__(self, message: str = "Distance service unavailable"):
        super().__init__(
            message=message,
            error_code="ERR_DISTANCE_UNAVAILABLE",
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
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry the raw exception object raised by a validator
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


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
