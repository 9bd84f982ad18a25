"""
FastAPI dependencies

Request-scoped resources handed to routes:
- a database session per request (never a module-level global)
- the verifier and processor built once at startup (``app.state``)
- the current billing catalog, refreshable at runtime
- the authenticated principal of the read path
"""
from collections.abc import Generator
from typing import Annotated

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlmodel import Session

from reconciler.api.errors import forbidden, unauthenticated
from reconciler.api.schemas import TokenPayload
from reconciler.billing.catalog import BillingCatalog, get_catalog
from reconciler.billing.processor import WebhookProcessor
from reconciler.billing.verifier import EventVerifier
from reconciler.core import security
from reconciler.core.db import engine

# auto_error=False so a missing header gets our own 401 envelope
bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """One session per request, closed when the response is sent."""
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]


def get_event_verifier(request: Request) -> EventVerifier:
    return request.app.state.event_verifier


def get_processor(request: Request) -> WebhookProcessor:
    return request.app.state.processor


def get_billing_catalog() -> BillingCatalog:
    return get_catalog()


VerifierDep = Annotated[EventVerifier, Depends(get_event_verifier)]
ProcessorDep = Annotated[WebhookProcessor, Depends(get_processor)]
CatalogDep = Annotated[BillingCatalog, Depends(get_billing_catalog)]
TokenDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def get_current_principal(token: TokenDep) -> TokenPayload:
    """
    Authenticate the caller of the read path

    Args:
        token: bearer credentials, if sent

    Returns:
        TokenPayload with ``sub`` (customer id) and ``role``

    Raises:
        AppError: 401001 when the token is missing, invalid or has no subject
    """
    if token is None:
        raise unauthenticated()
    try:
        payload = security.decode_access_token(token.credentials)
        token_data = TokenPayload(**payload)
    except (jwt.InvalidTokenError, ValidationError):
        raise unauthenticated()
    if not token_data.sub:
        raise unauthenticated()
    return token_data


CurrentPrincipal = Annotated[TokenPayload, Depends(get_current_principal)]


def get_current_customer_id(principal: CurrentPrincipal) -> str:
    return str(principal.sub)


CurrentCustomerId = Annotated[str, Depends(get_current_customer_id)]


def require_ops(principal: CurrentPrincipal) -> TokenPayload:
    """Operator-only endpoints."""
    if principal.role != security.ROLE_OPS:
        raise forbidden()
    return principal


OpsPrincipal = Annotated[TokenPayload, Depends(require_ops)]
