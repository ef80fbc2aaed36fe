"""
Error taxonomy and FastAPI exception handlers.

Only ComplaintNotFoundError and request validation errors reach clients as
distinct conditions. Everything else becomes a generic 500.
"""

import logging
from datetime import datetime
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from complaints.core.utc import utc_now

logger = logging.getLogger(__name__)


class ComplaintNotFoundError(Exception):
    """Raised when no complaint exists for the requested id."""

    def __init__(self, complaint_id: str):
        self.complaint_id = complaint_id
        super().__init__(f"Complaint not found with ID: {complaint_id}")


class ConcurrentModificationError(Exception):
    """Raised when a save keeps losing to concurrent writers."""

    def __init__(self, complaint_id: str, attempts: int):
        self.complaint_id = complaint_id
        self.attempts = attempts
        super().__init__(
            f"Complaint {complaint_id} was modified concurrently {attempts} times in a row"
        )


class ErrorResponse(BaseModel):
    """Error body returned for 404 and 500 responses."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    timestamp: datetime
    status: int
    error: str
    message: str
    path: str
    exception_type: str


def build_error_response(
    request: Request, status: HTTPStatus, message: str, exc: Exception
) -> JSONResponse:
    body = ErrorResponse(
        timestamp=utc_now(),
        status=status.value,
        error=status.phrase,
        message=message,
        path=request.url.path,
        exception_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=status.value,
        content=body.model_dump(mode="json", by_alias=True),
    )


async def complaint_not_found_handler(request: Request, exc: ComplaintNotFoundError) -> JSONResponse:
    logger.info("Complaint not found: %s (%s %s)", exc.complaint_id, request.method, request.url.path)
    return build_error_response(request, HTTPStatus.NOT_FOUND, str(exc), exc)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return build_error_response(
        request, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error", exc
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the service's exception handlers on the app."""
    app.add_exception_handler(ComplaintNotFoundError, complaint_not_found_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
