"""
Queue engine error taxonomy.

Services raise these; the API layer turns them into JSON responses through
`register_exception_handlers`. A failed mutation never leaves partial state
behind because the caller's session is rolled back before the error escapes.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class QueueError(Exception):
    """Base class for all queue engine errors"""
    status_code = status.HTTP_400_BAD_REQUEST
    error = "queue_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.error}


class ValidationError(QueueError):
    """Malformed request, e.g. missing walk-in fields or an invalid time window"""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error = "validation_error"


class AdmissionRejected(QueueError):
    """Booking refused by admission control"""
    status_code = status.HTTP_409_CONFLICT
    error = "admission_rejected"

    DISABLED = "disabled"
    CLOSED = "closed"
    TOO_SOON = "too_soon"
    TOO_LATE = "too_late"
    CAPACITY = "capacity"
    SLOT_UNAVAILABLE = "slot_unavailable"

    def __init__(self, reason: str, message: Optional[str] = None):
        super().__init__(message or f"Admission rejected: {reason}")
        self.reason = reason

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class InvalidTransition(QueueError):
    """Requested status change is not allowed from the current status"""
    status_code = status.HTTP_409_CONFLICT
    error = "invalid_transition"

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        super().__init__(message or f"Cannot move appointment from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class ConflictError(QueueError):
    """Conditional update lost a race; re-read the queue before acting again"""
    status_code = status.HTTP_409_CONFLICT
    error = "conflict"


class NotFound(QueueError):
    """Appointment, department, slot or closed date id did not resolve"""
    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(QueueError)
    async def queue_error_handler(request: Request, exc: QueueError):
        if isinstance(exc, ConflictError):
            logger.info(f"Conflict on {request.method} {request.url.path}: {exc.message}")
        else:
            logger.debug(f"{exc.error} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
