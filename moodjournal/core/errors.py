"""Error normalization and handlers."""

import logging
import builtins
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from moodjournal.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id

    def details(self) -> Dict[str, Any]:
        return {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class PermissionError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class QuotaExceededError(AppError):
    """Free-tier daily allowance exhausted. Not retryable until the date rolls over."""
    code = "quota_exceeded"
    status_code = 403

    def __init__(
        self,
        message: str,
        *,
        action: Optional[str] = None,
        limit: Optional[int] = None,
        used: Optional[int] = None,
        resets_at: Optional[datetime] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.action = action
        self.limit = limit
        self.used = used
        self.resets_at = resets_at

    def details(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "limit": self.limit,
            "used": self.used,
            "resets_at": self.resets_at.isoformat() if self.resets_at else None,
        }


class PaymentNotFoundError(NotFoundError):
    code = "payment_not_found"


class PaymentAlreadyTerminalError(ConflictError):
    code = "payment_terminal"


class GatewayCommunicationError(AppError):
    """Payment gateway unreachable or returned garbage. Retry later; never a payment failure."""
    code = "gateway_unavailable"
    status_code = 503
    retryable = True


class PaymentsDisabledError(AppError):
    code = "payments_disabled"
    status_code = 503


class StorageError(AppError):
    code = "storage_error"
    status_code = 500
    retryable = True


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, details: Optional[Dict[str, Any]] = None) -> dict:
    error = {"code": code, "message": message, "request_id": request_id}
    if details:
        error["details"] = details
    return {
        "error": error,
        "detail": message,
    }


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.details())
    logger = logging.getLogger("moodjournal")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    if exc.retryable:
        response.headers["retry-after"] = "30"
    return response


_HTTP_ERROR_CODES = {401: "unauthorized", 403: "forbidden", 404: "not_found", 503: "unavailable"}


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("moodjournal")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("moodjournal")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
