"""
FastAPI application entry point

Responsibilities:
1. Build the app and its lifespan (verifier, catalog, processor)
2. Initialise logging and Sentry
3. Register the exception handlers that render the response envelope
4. Mount the API router

Run:
    uvicorn reconciler.main:app --reload
    fastapi dev reconciler/main.py
"""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from reconciler.api.errors import AppError
from reconciler.api.main import api_router
from reconciler.billing.catalog import get_catalog
from reconciler.billing.processor import WebhookProcessor
from reconciler.billing.verifier import EventVerifier
from reconciler.core.config import settings
from reconciler.core.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    """OpenAPI operation id: ``{tag}-{route name}``, e.g. ``webhooks-stripe_webhook``."""
    return f"{route.tags[0]}-{route.name}"


# Sentry's logging integration turns ERROR records (terminal event failures,
# transient processing failures) into alerts
if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":  # pragma: no cover
    sentry_sdk.init(
        dsn=str(settings.SENTRY_DSN),
        environment=settings.ENVIRONMENT,
        traces_sample_rate=1.0,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup wiring

    Fails fast: a missing signing secret (WebhookConfigurationError) or an
    invalid billing catalog aborts startup instead of failing per request.
    """
    app.state.event_verifier = EventVerifier(
        settings.STRIPE_WEBHOOK_SECRET, tolerance=settings.WEBHOOK_TOLERANCE_SECONDS
    )
    catalog = get_catalog()
    app.state.processor = WebhookProcessor(
        timeout_seconds=settings.WEBHOOK_PROCESSING_TIMEOUT_SECONDS
    )
    logger.info("%s ready (catalog %s)", settings.PROJECT_NAME, catalog.version)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


@app.exception_handler(AppError)
async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    """Render an AppError into the envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "message": exc.message, "data": None},
    )


@app.exception_handler(HTTPException)
async def http_error_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """
    Render framework HTTP errors into the envelope

    ``detail`` may be ``{"code": ..., "message": ...}``; a plain string gets
    the code ``status_code * 1000``.
    """
    payload: dict[str, Any]
    if isinstance(exc.detail, dict) and {"code", "message"} <= set(exc.detail.keys()):
        payload = {"code": exc.detail.get("code"), "message": exc.detail.get("message")}
    else:
        payload = {"code": exc.status_code * 1000, "message": str(exc.detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": payload["code"], "message": payload["message"], "data": None},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Validation errors keep their details under ``data.errors``."""
    return JSONResponse(
        status_code=422,
        content={
            "code": 422000,
            "message": "Validation error",
            "data": {"errors": jsonable_errors(exc)},
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # ctx may hold exception instances that are not JSON serializable
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


app.include_router(api_router, prefix=settings.API_V1_STR)
