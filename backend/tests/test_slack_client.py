import asyncio

import httpx

from connectors.slack import (
    HttpSlackClient,
    extract_slack_display_name,
    extract_slack_email,
    extract_slack_timezone,
)


def _client(handler) -> HttpSlackClient:
    return HttpSlackClient(api_base="https://slack.test/api", timeout=1.0, transport=httpx.MockTransport(handler))


def test_retrieve_message_queries_single_parent() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True, "messages": [{"ts": "1.1", "bot_id": "B1"}]})

    result = asyncio.run(_client(handler).retrieve_message("xoxb-1", "C1", "1.1"))

    assert result.ok
    assert result.data["messages"][0]["bot_id"] == "B1"
    [request] = seen
    assert request.url.path == "/api/conversations.history"
    assert request.url.params["latest"] == "1.1"
    assert request.url.params["inclusive"] == "true"
    assert request.url.params["limit"] == "1"
    assert request.headers["Authorization"] == "Bearer xoxb-1"


def test_send_message_posts_json_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/api/chat.postMessage"
        assert b'"thread_ts":"5.5"' in request.content.replace(b" ", b"")
        return httpx.Response(200, json={"ok": True, "ts": "6.6"})

    result = asyncio.run(_client(handler).send_message("xoxb-1", {"channel": "C1", "text": "hi", "thread_ts": "5.5"}))

    assert result.ok
    assert result.data["ts"] == "6.6"


def test_ok_false_becomes_failure_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": False, "error": "user_not_found"})

    result = asyncio.run(_client(handler).retrieve_user_info("xoxb-1", "U404"))

    assert not result.ok
    assert result.error == "user_not_found"


def test_transport_failures_never_raise() -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    def not_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    errors = [
        asyncio.run(_client(handler).retrieve_channel_info("xoxb-1", "C1")).error
        for handler in (timeout, server_error, not_json, refused)
    ]

    assert errors == ["timeout", "http_503", "request_failed", "request_failed"]


def test_profile_field_extraction() -> None:
    slack_user = {
        "name": "jdoe",
        "real_name": " Jane Doe ",
        "tz": "America/New_York",
        "profile": {"email": " Jane@Customer.IO "},
    }

    assert extract_slack_email(slack_user) == "jane@customer.io"
    assert extract_slack_display_name(slack_user) == "Jane Doe"
    assert extract_slack_timezone(slack_user) == "America/New_York"
    assert extract_slack_email({"profile": {}}) is None
    assert extract_slack_display_name(None) is None
