"""Global exception handlers for FastAPI.

Domain exceptions carry no HTTP knowledge; this module is the one place
they are mapped to status codes and error codes.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import RateLimitedError
from core.exceptions import (
    ConflictError,
    IllegalTransitionError,
    InvalidAmountError,
    InvalidInputError,
    InvalidShareTokenError,
    NotFoundError,
    PaymentUnavailableError,
    QuoteExpiredError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

# IllegalTransitionError.action -> error code
_TRANSITION_CODES = {
    "edit": ErrorCodes.QUOTE_NOT_EDITABLE,
    "send": ErrorCodes.QUOTE_NOT_EDITABLE,
    "accept": ErrorCodes.INVALID_STATUS_TRANSITION,
    "decline": ErrorCodes.INVALID_STATUS_TRANSITION,
    "mark_paid": ErrorCodes.QUOTE_NOT_PAYABLE,
}


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _error(request: Request, status_code: int, code: str, message: str, headers: dict | None = None):
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=error_response(code, message, _request_id(request)).model_dump(mode="json"),
    )


def _validation_message(errors: list[dict]) -> str:
    """First field error as 'field: message', readable by a form."""
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(InvalidInputError)
    async def invalid_input_handler(request: Request, exc: InvalidInputError):
        code = ErrorCodes.INVALID_REQUEST
        if isinstance(exc, InvalidAmountError):
            code = ErrorCodes.INVALID_AMOUNT
        elif isinstance(exc, InvalidShareTokenError):
            code = ErrorCodes.INVALID_SHARE_TOKEN
        return _error(request, 400, code, str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(request, 404, ErrorCodes.NOT_FOUND, str(exc) or "Not found")

    @app.exception_handler(IllegalTransitionError)
    async def illegal_transition_handler(request: Request, exc: IllegalTransitionError):
        if isinstance(exc, QuoteExpiredError):
            code = ErrorCodes.QUOTE_EXPIRED
        else:
            code = _TRANSITION_CODES.get(exc.action, ErrorCodes.INVALID_STATUS_TRANSITION)
        return _error(request, 409, code, str(exc))

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        return _error(request, 409, ErrorCodes.QUOTE_UNAVAILABLE, str(exc))

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError):
        return _error(
            request,
            429,
            ErrorCodes.RATE_LIMITED,
            f"Too many requests. Please wait {exc.retry_after_seconds} seconds.",
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(UpstreamError)
    async def upstream_handler(request: Request, exc: UpstreamError):
        logger.error(f"Upstream failure on {request.method} {request.url.path}: {exc}")
        return _error(request, 502, ErrorCodes.SERVICE_UNAVAILABLE, "A required service is unavailable, please try again")

    @app.exception_handler(PaymentUnavailableError)
    async def payment_unavailable_handler(request: Request, exc: PaymentUnavailableError):
        logger.error(f"Payment processor failure on {request.method} {request.url.path}: {exc}")
        return _error(request, 502, ErrorCodes.PAYMENT_UNAVAILABLE, "Payment is temporarily unavailable, please try again")

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(request, 422, ErrorCodes.VALIDATION_ERROR, _validation_message(exc.errors()))

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError):
        return _error(request, 422, ErrorCodes.VALIDATION_ERROR, _validation_message(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
