from services.slack_payloads import SlackEventKind, parse_webhook_payload


def _payload(**event):
    return {"type": "event_callback", "event_id": "Ev1", "team_id": "T1", "event": {"type": "message", **event}}


def test_top_level_message_uses_ts_as_thread_key() -> None:
    event = parse_webhook_payload(_payload(channel="C1", user="U1", text="hi", ts="1.1", team="T1"))

    assert event.kind == SlackEventKind.MESSAGE
    assert event.thread_key == "1.1"
    assert event.effective_team_id == "T1"
    assert event.event_id == "Ev1"


def test_thread_reply_keys_on_parent_ts() -> None:
    event = parse_webhook_payload(_payload(channel="C1", user="U1", text="re", ts="1.2", thread_ts="1.1"))

    assert event.kind == SlackEventKind.THREAD_REPLY
    assert event.thread_key == "1.1"
    assert event.team_id is None


def test_join_subtypes_are_channel_joins() -> None:
    for subtype in ("channel_join", "group_join"):
        event = parse_webhook_payload(_payload(subtype=subtype, channel="C9", user="UBOT", inviter="U7"))
        assert event.kind == SlackEventKind.CHANNEL_JOIN
        assert event.inviter == "U7"


def test_ext_shared_channel_prefers_top_level_team() -> None:
    payload = _payload(channel="C1", user="U1", text="hi", ts="1.1", team="TPARTNER")
    payload["is_ext_shared_channel"] = True

    event = parse_webhook_payload(payload)

    assert event.team_id == "TPARTNER"
    assert event.shared_team_id == "T1"
    assert event.effective_team_id == "T1"


def test_unrecognized_shapes_become_unknown() -> None:
    cases = [
        {},
        {"type": "event_callback"},
        {"type": "event_callback", "event": {"type": "reaction_added", "user": "U1"}},
        _payload(channel="C1", text="no user", ts="1.1"),
        _payload(channel="C1", user="U1", text="bot", ts="1.1", bot_id="B1"),
        _payload(channel="C1", user="U1", ts="1.1", subtype="message_deleted"),
        _payload(subtype="channel_join", user="U1"),
        {"type": "event_callback", "event": {"type": "message", "channel": 123, "user": ["U1"]}},
    ]

    for payload in cases:
        assert parse_webhook_payload(payload).kind == SlackEventKind.UNKNOWN


def test_raw_event_is_kept_for_logging() -> None:
    payload = _payload(channel="C1", user="U1", text="hi", ts="1.1", files=[{"id": "F1"}])

    event = parse_webhook_payload(payload)

    assert event.raw["files"] == [{"id": "F1"}]
