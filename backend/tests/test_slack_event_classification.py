from types import SimpleNamespace

from services.slack_channel_scope import ChannelScope, ChannelTag
from services.slack_event_router import ParentMessage, RouteAction, classify_event
from services.slack_payloads import SlackEvent, SlackEventKind

PRIMARY = ChannelScope(tag=ChannelTag.PRIMARY, authorization=SimpleNamespace())
SUPPORT = ChannelScope(tag=ChannelTag.SUPPORT, authorization=SimpleNamespace())
COMPANY = ChannelScope(tag=ChannelTag.PRIVATE_COMPANY, authorization=SimpleNamespace(), company=SimpleNamespace())
THREAD = SimpleNamespace(conversation_id="conv-1")


def _event(kind: SlackEventKind, thread_ts=None, channel="C1") -> SlackEvent:
    return SlackEvent(kind=kind, channel_id=channel, user_id="U1", text="hi", ts="2.2", thread_ts=thread_ts)


def test_known_thread_wins_over_origination() -> None:
    reply = _event(SlackEventKind.THREAD_REPLY, thread_ts="1.1")
    bot_parent = ParentMessage(bot_id="B1")

    for scope in (PRIMARY, SUPPORT, COMPANY):
        decision = classify_event(reply, scope, THREAD, parent=bot_parent)
        assert decision.action == RouteAction.APPEND_TO_THREAD


def test_unknown_thread_reply_depends_on_parent_author() -> None:
    reply = _event(SlackEventKind.THREAD_REPLY, thread_ts="1.1")

    assert classify_event(reply, SUPPORT, None, ParentMessage(bot_id="B1")).action == RouteAction.ORIGINATE_FROM_BOT_REPLY
    assert classify_event(reply, COMPANY, None, ParentMessage(user_id="U9")).action == RouteAction.IGNORE_REPLY
    assert classify_event(reply, PRIMARY, None, ParentMessage(bot_id="B1")).action == RouteAction.IGNORE


def test_top_level_messages() -> None:
    message = _event(SlackEventKind.MESSAGE)

    assert classify_event(message, SUPPORT, None).action == RouteAction.ORIGINATE_DIRECT
    assert classify_event(message, COMPANY, None).action == RouteAction.ORIGINATE_DIRECT
    assert classify_event(message, PRIMARY, None).action == RouteAction.IGNORE
    assert classify_event(message, SUPPORT, THREAD).reason == "duplicate_delivery"


def test_unknown_scope_carries_its_reason() -> None:
    decision = classify_event(_event(SlackEventKind.MESSAGE), ChannelScope.unknown("team_mismatch"), None)

    assert decision.action == RouteAction.IGNORE
    assert decision.reason == "team_mismatch"


def test_channel_join_skips_authorized_channels() -> None:
    join = _event(SlackEventKind.CHANNEL_JOIN, channel="C7")

    assert classify_event(join, None).action == RouteAction.CREATE_COMPANY
    assert classify_event(join, None, account_channel_ids=frozenset({"C7"})).action == RouteAction.IGNORE


def test_unknown_kind_is_ignored() -> None:
    decision = classify_event(SlackEvent(kind=SlackEventKind.UNKNOWN), SUPPORT, THREAD)

    assert decision.action == RouteAction.IGNORE
