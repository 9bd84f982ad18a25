"""
API exceptions

Every error a route or dependency raises on purpose is an ``AppError``; the
handler in ``reconciler.main`` renders it into the response envelope.

Business codes:
- 400101: webhook signature rejected
- 401001: missing or invalid bearer token
- 403001: token lacks the required role
- 503001: retryable processing failure
- 500201: billing catalog reload failed, previous catalog kept
- 422000: request validation error (raised by FastAPI, rendered in main)
"""
from __future__ import annotations


class AppError(Exception):
    """
    Error carried to the client

    Args:
        code: business error code
        message: short description
        status_code: HTTP status (default 400)
    """

    def __init__(self, *, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def invalid_signature() -> AppError:
    return AppError(code=400101, message="Invalid webhook signature", status_code=400)


def unauthenticated() -> AppError:
    return AppError(code=401001, message="Could not validate credentials", status_code=401)


def forbidden() -> AppError:
    return AppError(code=403001, message="Operator role required", status_code=403)


def retry_later() -> AppError:
    # the provider redelivers on 5xx
    return AppError(code=503001, message="Temporary processing failure, retry later", status_code=503)


def catalog_reload_failed(reason: str) -> AppError:
    return AppError(code=500201, message=f"Billing catalog reload failed: {reason}", status_code=500)
