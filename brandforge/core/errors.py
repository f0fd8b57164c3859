"""Error taxonomy and FastAPI handlers.

Every error that reaches a client is reduced to one message, a stable code
and a status. Provider payloads and stack state stay in server logs.
"""

import logging
from typing import List, Optional, TYPE_CHECKING
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from brandforge.core.logging import get_request_id

if TYPE_CHECKING:
    from brandforge.models.generation import GenerationAttempt


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class UnauthorizedError(AppError):
    code = "unauthorized"
    status_code = 401


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class InsufficientCreditsError(AppError):
    """Metered balance too low for the requested action."""
    code = "insufficient_credits"
    status_code = 402

    def __init__(self, message: str, *, required: int = 1, available: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.required = required
        self.available = available


class LedgerWriteError(AppError):
    """Settlement could not be written after the action succeeded."""
    code = "ledger_write_failed"
    status_code = 500


class GenerationError(AppError):
    """Base for failures classified at the generative-model boundary."""
    code = "generation_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, provider_detail: Optional[str] = None, provider_status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.provider_detail = provider_detail
        self.provider_status = provider_status
        self.attempts: List["GenerationAttempt"] = []


class RateLimitedError(GenerationError):
    code = "rate_limited"
    status_code = 429


class QuotaExhaustedUpstreamError(GenerationError):
    code = "upstream_quota_exhausted"
    status_code = 402


class AssetProcessingError(GenerationError):
    code = "asset_processing_error"
    status_code = 400


class TransientProviderError(GenerationError):
    code = "transient_provider_error"
    status_code = 500
    retryable = True


class GenerationFailedError(GenerationError):
    """Retries exhausted; wraps the last transient error's message."""
    code = "generation_failed"
    status_code = 500


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {"error": message, "code": code, "request_id": request_id}


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid)
    logger = logging.getLogger("brandforge")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    if exc.status_code == 401:
        code = "unauthorized"
    elif exc.status_code == 404:
        code = "not_found"
    else:
        code = "http_error"
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("brandforge")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    logger = logging.getLogger("brandforge")
    logger.warning("request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 400})
    response = JSONResponse(status_code=400, content=_error_payload("validation_error", message, rid))
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("brandforge")
    logger.error("unhandled.exception", exc_info=exc, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
