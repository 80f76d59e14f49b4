"""
Domain errors for booking, scheduling and community rules.

Services raise these; a single handler registered on the app turns them into
``{"detail": <message>, "kind": <kind>, "details": {...}}`` responses so the
client always gets one readable message plus a stable error kind.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for all business-rule failures."""

    kind: str = "domain_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "kind": self.kind, "details": self.details}


class ValidationError(DomainError):
    """Malformed or out-of-range input. The operation is never attempted."""

    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(DomainError):
    kind = "authentication_failed"
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDeniedError(DomainError):
    kind = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(DomainError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class SessionAlreadyStartedError(DomainError):
    """Cancellation attempted on a session that has already begun."""

    kind = "session_already_started"
    status_code = status.HTTP_409_CONFLICT


class CancellationWindowClosedError(DomainError):
    """Free window has passed and the session does not allow conditional cancellation."""

    kind = "cancellation_window_closed"
    status_code = status.HTTP_409_CONFLICT


class InvalidStateError(DomainError):
    """The booking is already terminal; the action no longer applies."""

    kind = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


class PaymentError(DomainError):
    kind = "payment_error"
    status_code = status.HTTP_502_BAD_GATEWAY


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
