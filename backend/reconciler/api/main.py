"""
API router

Collects the route modules mounted under ``settings.API_V1_STR``:
- webhooks: provider event intake
- entitlement / customers: read path over reconciled state
- events: processed-event audit for operators
- catalog: billing catalog inspection and reload for operators
- utils: health check
"""
from fastapi import APIRouter

from reconciler.api.routes import catalog, entitlements, events, utils, webhook

api_router = APIRouter()

api_router.include_router(webhook.router)  # /webhooks/*
api_router.include_router(entitlements.router)  # /entitlement/*
api_router.include_router(entitlements.customers_router)  # /customers/*
api_router.include_router(events.router)  # /events
api_router.include_router(catalog.router)  # /catalog/*
api_router.include_router(utils.router)  # /utils/*
