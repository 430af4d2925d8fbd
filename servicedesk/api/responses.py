"""JSON bodies shared by the customer-facing endpoints."""

from __future__ import annotations

from fastapi import status
from fastapi.responses import JSONResponse

from servicedesk.security import RateLimitExceededError

RATE_LIMITED_MESSAGE = "Demasiadas solicitudes. Por favor, espera un momento."


def error_response(status_code: int, message: str, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def rate_limited_response(exc: RateLimitExceededError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": RATE_LIMITED_MESSAGE, "retry_after": exc.retry_after},
        headers={"Retry-After": str(exc.retry_after)},
    )
