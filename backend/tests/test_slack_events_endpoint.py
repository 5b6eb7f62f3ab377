import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.routes import slack_events
from slack_fakes import CUSTOMER_SLACK_ID, SUPPORT_CHANNEL, message_payload

SECRET = "test-signing-secret"

client = TestClient(app)


def _signed_headers(body: bytes, secret: str = SECRET, timestamp: int | None = None) -> dict[str, str]:
    ts = str(timestamp if timestamp is not None else int(time.time()))
    digest = hmac.new(secret.encode(), f"v0:{ts}:".encode() + body, hashlib.sha256).hexdigest()
    return {
        "X-Slack-Request-Timestamp": ts,
        "X-Slack-Signature": f"v0={digest}",
        "Content-Type": "application/json",
    }


async def _never_duplicate(_event_id: str) -> bool:
    return False


@pytest.fixture
def wired(monkeypatch, event_router):
    monkeypatch.setattr(slack_events.settings, "SLACK_SIGNING_SECRET", SECRET)
    monkeypatch.setattr(slack_events, "is_duplicate_event", _never_duplicate)
    app.dependency_overrides[slack_events.get_event_router] = lambda: event_router
    try:
        yield event_router
    finally:
        app.dependency_overrides.clear()


def test_url_verification_returns_challenge(wired) -> None:
    body = json.dumps({"type": "url_verification", "challenge": "abc123"}).encode()

    response = client.post("/api/slack/events", content=body, headers=_signed_headers(body))

    assert response.status_code == 200
    assert response.json() == {"challenge": "abc123"}


def test_invalid_signature_is_rejected(wired, records) -> None:
    body = json.dumps(message_payload(SUPPORT_CHANNEL, CUSTOMER_SLACK_ID, "hi", "1.1")).encode()

    response = client.post("/api/slack/events", content=body, headers=_signed_headers(body, secret="wrong"))

    assert response.status_code == 401
    assert records.conversations == {}


def test_stale_timestamp_is_rejected(wired) -> None:
    body = b"{}"

    response = client.post(
        "/api/slack/events", content=body, headers=_signed_headers(body, timestamp=int(time.time()) - 600)
    )

    assert response.status_code == 401


def test_event_callback_is_processed_inline(wired, records) -> None:
    body = json.dumps(message_payload(SUPPORT_CHANNEL, CUSTOMER_SLACK_ID, "my export fails", "1.1")).encode()

    response = client.post("/api/slack/events", content=body, headers=_signed_headers(body))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert len(records.conversations) == 1
    assert records.messages[0].body == "my export fails"


def test_ignored_and_malformed_events_still_answer_ok(wired, records) -> None:
    bodies = [
        b"not json",
        b"[1, 2]",
        json.dumps({"type": "event_callback", "event": {"type": "reaction_added"}}).encode(),
        json.dumps(message_payload("CUNKNOWN", CUSTOMER_SLACK_ID, "hi", "1.1")).encode(),
    ]

    for body in bodies:
        response = client.post("/api/slack/events", content=body, headers=_signed_headers(body))
        assert response.status_code == 200
        assert response.json() == {"ok": True}

    assert records.conversations == {}


def test_unexpected_router_error_still_answers_ok(wired, monkeypatch) -> None:
    async def _boom(_event):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(wired, "handle_event", _boom)
    body = json.dumps(message_payload(SUPPORT_CHANNEL, CUSTOMER_SLACK_ID, "hi", "1.1")).encode()

    response = client.post("/api/slack/events", content=body, headers=_signed_headers(body))

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_health_reports_signing_secret(wired) -> None:
    response = client.get("/api/slack/events/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "signing_secret_configured": True}
