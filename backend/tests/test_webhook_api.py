from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlmodel import func, select

from factories import (
    checkout_subscription,
    credit_pack,
    dumps,
    envelope,
    now_ts,
    sign,
)
from reconciler import crud
from reconciler.billing.errors import WebhookConfigurationError
from reconciler.core.config import settings
from reconciler.enums import EventOutcome, Plan
from reconciler.main import app
from reconciler.models import ProcessedEventRecord, Subscription

WEBHOOK_URL = f"{settings.API_V1_STR}/webhooks/stripe"


def _post(client, body: bytes, signature: str | None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post(WEBHOOK_URL, content=body, headers=headers)


def _count(db, model) -> int:
    return db.exec(select(func.count()).select_from(model)).one()


def test_signed_event_is_applied_and_redelivery_is_duplicate(client, db):
    body = dumps(
        envelope(
            "checkout.session.completed",
            checkout_subscription("cus_http", session_id="cs_http", subscription_id="sub_http"),
            event_id="evt_http_1",
        )
    )

    r = _post(client, body, sign(body))
    assert r.status_code == 200
    payload = r.json()
    assert payload["code"] == 0
    assert payload["data"] == {
        "received": True,
        "event_id": "evt_http_1",
        "outcome": "applied",
        "duplicate": False,
    }

    r = _post(client, body, sign(body))
    assert r.status_code == 200
    assert r.json()["data"]["duplicate"] is True
    assert r.json()["data"]["outcome"] == "applied"

    db.expire_all()
    assert _count(db, ProcessedEventRecord) == 1
    sub = crud.get_current_subscription(session=db, customer_id="cus_http")
    assert sub.plan == Plan.premium_tier


def test_wrong_secret_is_rejected_without_side_effects(client, db):
    body = dumps(
        envelope(
            "checkout.session.completed",
            checkout_subscription("cus_forged", session_id="cs_forged", subscription_id="sub_forged"),
        )
    )

    r = _post(client, body, sign(body, secret="whsec_attacker"))

    assert r.status_code == 400
    assert r.json()["code"] == 400101
    assert r.json()["data"] is None
    assert _count(db, ProcessedEventRecord) == 0
    assert _count(db, Subscription) == 0


def test_tampered_body_is_rejected(client, db):
    body = dumps(envelope("checkout.session.completed", credit_pack("cus_tamper", session_id="cs_t", credits=10)))
    signature = sign(body)
    tampered = body.replace(b'"10"', b'"10000"')

    r = _post(client, tampered, signature)

    assert r.status_code == 400
    assert _count(db, ProcessedEventRecord) == 0


def test_missing_signature_header_is_rejected(client, db):
    body = dumps(envelope("invoice.paid", {"id": "in_1"}))

    r = _post(client, body, None)

    assert r.status_code == 400
    assert r.json()["code"] == 400101


def test_stale_timestamp_is_rejected(client, db):
    body = dumps(envelope("invoice.paid", {"id": "in_old"}))

    r = _post(client, body, sign(body, timestamp=now_ts() - settings.WEBHOOK_TOLERANCE_SECONDS - 60))

    assert r.status_code == 400
    assert _count(db, ProcessedEventRecord) == 0


def test_authentic_non_event_payload_is_acknowledged(client, db):
    body = b'{"hello": "world"}'

    r = _post(client, body, sign(body))

    assert r.status_code == 200
    assert r.json()["data"] == {"received": True, "processed": False}
    assert _count(db, ProcessedEventRecord) == 0


def test_unknown_event_type_is_acknowledged(client, db):
    body = dumps(envelope("payment_method.attached", {"id": "pm_1"}, event_id="evt_pm"))

    r = _post(client, body, sign(body))

    assert r.status_code == 200
    assert r.json()["data"]["outcome"] == "ignored"
    record = crud.find_processed_event(session=db, event_id="evt_pm")
    assert record.outcome == EventOutcome.ignored


def test_terminal_failure_is_acknowledged(client, db):
    body = dumps(
        envelope(
            "checkout.session.completed",
            checkout_subscription(None, session_id="cs_nouser", subscription_id="sub_nouser"),
            event_id="evt_nouser",
        )
    )

    r = _post(client, body, sign(body))

    assert r.status_code == 200
    assert r.json()["data"]["outcome"] == "failed"
    record = crud.find_processed_event(session=db, event_id="evt_nouser")
    assert record.outcome == EventOutcome.failed


def test_transient_failure_answers_503(client, db, monkeypatch):
    def _boom(session, event):
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    monkeypatch.setattr(client.app.state.processor, "process", _boom)
    body = dumps(envelope("checkout.session.completed", credit_pack("cus_503", session_id="cs_503", credits=5)))

    r = _post(client, body, sign(body))

    assert r.status_code == 503
    assert r.json()["code"] == 503001
    assert _count(db, ProcessedEventRecord) == 0


def test_timeout_answers_503_and_redelivery_succeeds(client, db, monkeypatch):
    processor = client.app.state.processor
    ticks = iter([0.0, processor.timeout_seconds + 1])
    monkeypatch.setattr(processor, "_monotonic", lambda: next(ticks))
    body = dumps(
        envelope("checkout.session.completed", credit_pack("cus_to", session_id="cs_to", credits=25))
    )

    r = _post(client, body, sign(body))
    assert r.status_code == 503
    assert _count(db, ProcessedEventRecord) == 0

    monkeypatch.undo()
    r = _post(client, body, sign(body))
    assert r.status_code == 200
    assert r.json()["data"]["outcome"] == "applied"
    assert crud.get_ledger(session=db, customer_id="cus_to").granted_total == 25


def test_startup_fails_without_signing_secret(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)

    with pytest.raises(WebhookConfigurationError):
        with TestClient(app):
            pass
