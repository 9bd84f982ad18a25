from __future__ import annotations

import os

# Settings are read at import time; configure them before importing reconciler
os.environ["ENVIRONMENT"] = "local"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["SECRET_KEY"] = "test-secret-key-for-read-path-tokens"

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from reconciler.api.deps import get_db
from reconciler.billing.catalog import BillingCatalog, load_catalog
from reconciler.billing.processor import WebhookProcessor
from reconciler.core.config import DEFAULT_CATALOG_PATH
from reconciler.main import app
from reconciler.models import (
    CreditGrant,
    CreditLedger,
    Entitlement,
    ProcessedEventRecord,
    Purchase,
    Subscription,
)


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        session.rollback()
        # Clean tables after each test.
        session.exec(delete(CreditGrant))
        session.exec(delete(CreditLedger))
        session.exec(delete(Purchase))
        session.exec(delete(Subscription))
        session.exec(delete(Entitlement))
        session.exec(delete(ProcessedEventRecord))
        session.commit()


@pytest.fixture(scope="function")
def client(engine) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="session")
def catalog() -> BillingCatalog:
    return load_catalog(DEFAULT_CATALOG_PATH)


@pytest.fixture(scope="function")
def processor(catalog) -> WebhookProcessor:
    return WebhookProcessor(catalog=catalog)
