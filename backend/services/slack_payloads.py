"""
Inbound Slack webhook payloads.

Slack delivers loosely structured JSON. We parse it once into a
:class:`SlackEvent` whose ``kind`` is one of a closed set of shapes; anything
we do not recognise (or that is missing a field its shape needs) becomes
``SlackEventKind.UNKNOWN`` instead of raising.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

JOIN_SUBTYPES: frozenset[str] = frozenset({"channel_join", "group_join"})

# Message subtypes that never create records
IGNORED_MESSAGE_SUBTYPES: frozenset[str] = frozenset(
    {"bot_message", "message_changed", "message_deleted", "channel_leave", "group_leave"}
)


class SlackEventKind(str, Enum):
    MESSAGE = "message"
    THREAD_REPLY = "thread_reply"
    CHANNEL_JOIN = "channel_join"
    UNKNOWN = "unknown"


class SlackEventBody(BaseModel):
    """The ``event`` object of a Slack webhook."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    subtype: Optional[str] = None
    text: Optional[str] = None
    channel: Optional[str] = None
    team: Optional[str] = None
    user: Optional[str] = None
    ts: Optional[str] = None
    thread_ts: Optional[str] = None
    inviter: Optional[str] = None
    bot_id: Optional[str] = None


class SlackWebhookPayload(BaseModel):
    """Top-level webhook body (``event_callback`` envelope or a bare ``event``)."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    event_id: Optional[str] = None
    team_id: Optional[str] = None
    is_ext_shared_channel: bool = False
    event: Optional[SlackEventBody] = None


class SlackEvent(BaseModel):
    """Normalized inbound event handed to the router."""

    model_config = ConfigDict(frozen=True)

    kind: SlackEventKind
    event_id: Optional[str] = None
    subtype: Optional[str] = None
    text: str = ""
    channel_id: Optional[str] = None
    team_id: Optional[str] = None
    user_id: Optional[str] = None
    ts: Optional[str] = None
    thread_ts: Optional[str] = None
    inviter: Optional[str] = None
    is_ext_shared_channel: bool = False
    shared_team_id: Optional[str] = None
    raw: dict[str, Any] = {}

    @property
    def effective_team_id(self) -> Optional[str]:
        """Team used to find the governing authorization.

        On externally shared channels the event's ``team`` is the sender's
        workspace, so the explicit top-level ``team_id`` is used instead.
        """
        if self.is_ext_shared_channel:
            return self.shared_team_id
        return self.team_id

    @property
    def thread_key(self) -> Optional[str]:
        """The ts that identifies the conversation thread this event belongs to."""
        return self.thread_ts or self.ts


def _classify_shape(body: SlackEventBody) -> SlackEventKind:
    if body.type != "message":
        return SlackEventKind.UNKNOWN
    if body.subtype in JOIN_SUBTYPES:
        return SlackEventKind.CHANNEL_JOIN if body.channel else SlackEventKind.UNKNOWN
    if body.subtype in IGNORED_MESSAGE_SUBTYPES or body.bot_id:
        return SlackEventKind.UNKNOWN
    if not body.channel or not body.user or body.text is None:
        return SlackEventKind.UNKNOWN
    if body.thread_ts:
        return SlackEventKind.THREAD_REPLY
    if body.ts:
        return SlackEventKind.MESSAGE
    return SlackEventKind.UNKNOWN


def parse_webhook_payload(payload: dict[str, Any]) -> SlackEvent:
    """Parse a raw webhook body into a :class:`SlackEvent`.

    Never raises: malformed bodies come back as ``SlackEventKind.UNKNOWN``.
    """
    raw_event: dict[str, Any] = payload.get("event") if isinstance(payload.get("event"), dict) else {}
    try:
        envelope = SlackWebhookPayload.model_validate(payload)
    except ValidationError:
        return SlackEvent(kind=SlackEventKind.UNKNOWN, raw=raw_event)

    body = envelope.event
    if body is None:
        return SlackEvent(kind=SlackEventKind.UNKNOWN, event_id=envelope.event_id, raw=raw_event)

    return SlackEvent(
        kind=_classify_shape(body),
        event_id=envelope.event_id,
        subtype=body.subtype,
        text=body.text or "",
        channel_id=body.channel,
        team_id=body.team,
        user_id=body.user,
        ts=body.ts,
        thread_ts=body.thread_ts,
        inviter=body.inviter,
        is_ext_shared_channel=envelope.is_ext_shared_channel,
        shared_team_id=envelope.team_id if envelope.is_ext_shared_channel else None,
        raw=raw_event,
    )
