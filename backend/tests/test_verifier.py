from __future__ import annotations

import pytest

from factories import WEBHOOK_SECRET, dumps, envelope, now_ts, sign
from reconciler.billing.errors import (
    InvalidSignatureError,
    MalformedEnvelopeError,
    WebhookConfigurationError,
)
from reconciler.billing.verifier import EventVerifier


@pytest.fixture
def verifier() -> EventVerifier:
    return EventVerifier(WEBHOOK_SECRET, tolerance=300)


def test_valid_signature_yields_event(verifier):
    body = dumps(envelope("invoice.paid", {"id": "in_1"}, event_id="evt_v1", created=1_700_000_000))

    event = verifier.verify(body, sign(body))

    assert event.id == "evt_v1"
    assert event.type == "invoice.paid"
    assert event.created_at is not None
    assert event.created_at.year == 2023
    assert event.data.object == {"id": "in_1"}


def test_any_valid_v1_among_several_is_accepted(verifier):
    body = dumps(envelope("invoice.paid", {"id": "in_2"}))
    ts = now_ts()
    good = sign(body, timestamp=ts)
    bad = sign(body, secret="whsec_old", timestamp=ts).split(",", 1)[1]

    event = verifier.verify(body, f"{good},{bad}")

    assert event.type == "invoice.paid"


@pytest.mark.parametrize("signature", [None, ""])
def test_missing_header(verifier, signature):
    with pytest.raises(InvalidSignatureError):
        verifier.verify(b"{}", signature)


def test_wrong_secret(verifier):
    body = dumps(envelope("invoice.paid", {"id": "in_3"}))
    with pytest.raises(InvalidSignatureError):
        verifier.verify(body, sign(body, secret="whsec_other"))


def test_modified_body(verifier):
    body = dumps(envelope("invoice.paid", {"id": "in_4"}))
    signature = sign(body)
    with pytest.raises(InvalidSignatureError):
        verifier.verify(body + b" ", signature)


def test_stale_timestamp(verifier):
    body = dumps(envelope("invoice.paid", {"id": "in_5"}))
    with pytest.raises(InvalidSignatureError):
        verifier.verify(body, sign(body, timestamp=now_ts() - 301 - 5))


def test_garbage_header(verifier):
    with pytest.raises(InvalidSignatureError):
        verifier.verify(b"{}", "not-a-signature")


def test_non_utf8_body(verifier):
    body = b"\xff\xfe\x00{"
    with pytest.raises(InvalidSignatureError):
        verifier.verify(body, sign(body))


@pytest.mark.parametrize(
    "body",
    [
        b"not json at all",
        b"[1, 2, 3]",
        b'{"type": "invoice.paid"}',
        b'{"id": "evt_no_type"}',
        b'{"id": "", "type": "invoice.paid"}',
    ],
)
def test_authentic_payload_that_is_not_an_event(verifier, body):
    with pytest.raises(MalformedEnvelopeError):
        verifier.verify(body, sign(body))


def test_missing_secret_is_a_configuration_error():
    with pytest.raises(WebhookConfigurationError):
        EventVerifier(None)
    with pytest.raises(WebhookConfigurationError):
        EventVerifier("")
