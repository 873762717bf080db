#!/usr/bin/env python3
"""
Custom exceptions and error handlers for the web application.
"""

import logging
from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceException(Exception):
    """Base exception for service layer errors."""
    pass


class NotificationLogNotFoundException(ServiceException):
    """Raised when a notification log entry is not found."""
    pass


class InvalidSettingsException(ServiceException):
    """Raised when notification preferences are invalid."""
    pass


class ChannelNotReadyException(ServiceException):
    """Raised when a channel has no destination configured (no address, webhook or device)."""
    pass


class NotificationException(ServiceException):
    """Raised when notification fails."""
    pass


async def service_exception_handler(
    request: Request,
    exc: ServiceException
) -> JSONResponse:
    """
    Handle service layer exceptions.

    Args:
        request: The FastAPI request.
        exc: The service exception.

    Returns:
        JSONResponse with error details.
    """
    logger.error(f"Service error in {request.url.path}: {exc}")

    status_code = 500
    if isinstance(exc, NotificationLogNotFoundException):
        status_code = 404
    elif isinstance(exc, (InvalidSettingsException, ChannelNotReadyException)):
        status_code = 400
    elif isinstance(exc, NotificationException):
        status_code = 502

    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": str(exc),
            "type": exc.__class__.__name__
        }
    )


async def http_exception_handler(
    request: Request,
    exc: HTTPException
) -> JSONResponse:
    """
    Handle FastAPI HTTP exceptions with consistent format.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "type": "HTTPException"
        }
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors with consistent format.
    """
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request",
            "errors": [
                {"loc": list(error.get("loc", [])), "msg": error.get("msg")}
                for error in exc.errors()
            ],
            "type": "ValidationError"
        }
    )


async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.
    """
    logger.exception(f"Unexpected error in {request.url.path}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "type": "InternalError"
        }
    )
