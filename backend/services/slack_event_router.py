"""
Slack event router.

Turns one inbound Slack event into at most one set of side effects:

1. Parse the payload into a :class:`SlackEvent` (unknown shapes are ignored)
2. Find the account: the thread index first, then the team's support authorization
3. Resolve the channel scope (primary / private company / support / unknown)
4. Look up the thread parent when a reply does not match a known thread
5. :func:`classify_event` picks a :class:`RouteAction` (pure, no I/O)
6. Apply it: append, originate, create a company, or ignore

Every drop is logged and returned as a :class:`RouteResult`; nothing is
raised to the webhook layer for per-event failures.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from connectors.slack import SlackClient
from models.conversation import Conversation
from models.slack_authorization import SCOPE_SUPPORT, SlackAuthorization
from models.slack_conversation_thread import SlackConversationThread
from services.slack_authorizations import AuthorizationRegistry
from services.slack_channel_scope import ChannelScope, ChannelTag, resolve_channel_scope
from services.slack_errors import (
    DuplicateThreadError,
    IdentityResolutionError,
    SlackApiError,
    SlackEventError,
)
from services.slack_identity import Actor, ActorKind, resolve_agent_sender, resolve_author
from services.slack_notifications import SlackNotifier
from services.slack_payloads import SlackEvent, SlackEventKind, parse_webhook_payload
from services.slack_records import RecordStore
from services.slack_threads import ThreadIndex

logger = logging.getLogger(__name__)

SLACK_SOURCE = "slack"


class RouteAction(str, Enum):
    APPEND_TO_THREAD = "append_to_thread"
    ORIGINATE_FROM_BOT_REPLY = "originate_from_bot_reply"
    ORIGINATE_DIRECT = "originate_direct"
    IGNORE_REPLY = "ignore_reply"
    CREATE_COMPANY = "create_company"
    IGNORE = "ignore"


@dataclass(frozen=True)
class ParentMessage:
    """The root message of a Slack thread, as returned by conversations.history."""

    text: str = ""
    bot_id: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_payload(cls, message: dict[str, Any]) -> "ParentMessage":
        return cls(
            text=message.get("text") or "",
            bot_id=message.get("bot_id") or None,
            user_id=message.get("user") or None,
        )

    @property
    def is_bot_message(self) -> bool:
        return bool(self.bot_id)


@dataclass(frozen=True)
class RouteDecision:
    action: RouteAction
    reason: str


@dataclass(frozen=True)
class RouteResult:
    action: RouteAction
    reason: str
    account_id: Optional[UUID] = None
    conversation_id: Optional[UUID] = None
    message_id: Optional[UUID] = None
    company_id: Optional[UUID] = None

    @property
    def ignored(self) -> bool:
        return self.action in (RouteAction.IGNORE, RouteAction.IGNORE_REPLY)


def classify_event(
    event: SlackEvent,
    scope: Optional[ChannelScope],
    thread: Optional[SlackConversationThread] = None,
    parent: Optional[ParentMessage] = None,
    account_channel_ids: frozenset[str] = frozenset(),
) -> RouteDecision:
    """
    Map an event plus its looked-up context to a route action.

    Args:
        event: Parsed inbound event
        scope: Channel scope for the event's channel (unused for joins)
        thread: Thread matching the event's thread key, if any
        parent: Thread parent, looked up only for replies to unknown threads
        account_channel_ids: Channels of the account's own authorizations (joins only)
    """
    if event.kind is SlackEventKind.UNKNOWN:
        return RouteDecision(RouteAction.IGNORE, "unrecognized_event")

    if event.kind is SlackEventKind.CHANNEL_JOIN:
        if event.channel_id in account_channel_ids:
            return RouteDecision(RouteAction.IGNORE, "authorized_channel_join")
        return RouteDecision(RouteAction.CREATE_COMPANY, "channel_join")

    if scope is None or not scope.is_known:
        return RouteDecision(RouteAction.IGNORE, scope.reason if scope else "unknown_channel")

    if event.kind is SlackEventKind.THREAD_REPLY:
        # A known thread always wins over origination
        if thread is not None:
            return RouteDecision(RouteAction.APPEND_TO_THREAD, f"{scope.tag.value}_thread_reply")
        if not scope.accepts_new_conversations:
            return RouteDecision(RouteAction.IGNORE, "unknown_thread_in_primary_channel")
        if parent is None:
            return RouteDecision(RouteAction.IGNORE, "parent_message_unavailable")
        if parent.is_bot_message:
            return RouteDecision(RouteAction.ORIGINATE_FROM_BOT_REPLY, "reply_to_bot_message")
        return RouteDecision(RouteAction.IGNORE_REPLY, "reply_to_human_message")

    # Top-level message
    if thread is not None:
        return RouteDecision(RouteAction.IGNORE, "duplicate_delivery")
    if not scope.accepts_new_conversations:
        return RouteDecision(RouteAction.IGNORE, "top_level_message_in_primary_channel")
    return RouteDecision(RouteAction.ORIGINATE_DIRECT, f"{scope.tag.value}_channel_message")


class SlackEventRouter:
    """Resolves inbound Slack events into conversations, messages and companies."""

    def __init__(
        self,
        client: SlackClient,
        registry: AuthorizationRegistry,
        threads: ThreadIndex,
        records: RecordStore,
        notifier: Optional[SlackNotifier] = None,
    ) -> None:
        self.client = client
        self.registry = registry
        self.threads = threads
        self.records = records
        self.notifier = notifier or SlackNotifier(client, registry, threads)

    async def handle_payload(self, payload: dict[str, Any]) -> RouteResult:
        return await self.handle_event(parse_webhook_payload(payload))

    async def handle_event(self, event: SlackEvent) -> RouteResult:
        """Route one event; per-event failures become an ignored :class:`RouteResult`."""
        try:
            result = await self._route(event)
        except SlackEventError as exc:
            logger.warning(
                "[slack_router] Dropped event id=%s channel=%s user=%s reason=%s: %s raw=%s",
                event.event_id,
                event.channel_id,
                event.user_id,
                exc.reason,
                exc,
                event.raw,
            )
            return RouteResult(RouteAction.IGNORE, exc.reason)

        log = logger.debug if result.ignored else logger.info
        log(
            "[slack_router] event id=%s channel=%s action=%s reason=%s conversation=%s",
            event.event_id,
            event.channel_id,
            result.action.value,
            result.reason,
            result.conversation_id,
        )
        return result

    async def _route(self, event: SlackEvent) -> RouteResult:
        if event.kind is SlackEventKind.UNKNOWN:
            return RouteResult(RouteAction.IGNORE, "unrecognized_event")
        if event.kind is SlackEventKind.CHANNEL_JOIN:
            return await self._handle_channel_join(event)

        thread = await self.threads.find_thread(event.channel_id, event.thread_key)
        account_id = await self._resolve_account_id(event, thread)
        if account_id is None:
            return RouteResult(RouteAction.IGNORE, "unknown_team")

        scope = await resolve_channel_scope(
            account_id,
            event.channel_id,
            event.team_id,
            self.registry,
            self.records,
            is_ext_shared_channel=event.is_ext_shared_channel,
            shared_team_id=event.shared_team_id,
        )

        parent: Optional[ParentMessage] = None
        slack_user: Optional[dict[str, Any]] = None
        if (
            event.kind is SlackEventKind.THREAD_REPLY
            and thread is None
            and scope.accepts_new_conversations
        ):
            parent, slack_user = await self._lookup_parent_and_author(event, scope.authorization)

        decision = classify_event(event, scope, thread, parent)
        if decision.action is RouteAction.APPEND_TO_THREAD:
            return await self._append_to_thread(event, scope, thread)
        if decision.action in (RouteAction.ORIGINATE_DIRECT, RouteAction.ORIGINATE_FROM_BOT_REPLY):
            return await self._originate(event, scope, decision, slack_user)
        return RouteResult(decision.action, decision.reason, account_id=account_id)

    async def _resolve_account_id(
        self,
        event: SlackEvent,
        thread: Optional[SlackConversationThread],
    ) -> Optional[UUID]:
        if thread is not None:
            return thread.account_id
        team_id = event.effective_team_id
        if not team_id:
            return None
        authorization = await self.registry.find_authorization_by_team(team_id, SCOPE_SUPPORT)
        if authorization is None:
            logger.info("[slack_router] No support authorization for team=%s", team_id)
            return None
        return authorization.account_id

    async def _lookup_parent_and_author(
        self,
        event: SlackEvent,
        authorization: SlackAuthorization,
    ) -> tuple[ParentMessage, Optional[dict[str, Any]]]:
        """Fetch the thread parent and the author's profile concurrently."""
        token = authorization.access_token
        is_bot_author = bool(authorization.bot_user_id) and event.user_id == authorization.bot_user_id
        if is_bot_author:
            parent_result = await self.client.retrieve_message(token, event.channel_id, event.thread_ts)
            user_result = None
        else:
            parent_result, user_result = await asyncio.gather(
                self.client.retrieve_message(token, event.channel_id, event.thread_ts),
                self.client.retrieve_user_info(token, event.user_id),
            )

        if not parent_result.ok:
            raise SlackApiError("conversations.history", parent_result.error)
        messages = parent_result.data.get("messages") or []
        # history returns the next older message when the root is gone
        if not messages or messages[0].get("ts") != event.thread_ts:
            raise SlackApiError("conversations.history", "parent_not_found")
        parent = ParentMessage.from_payload(messages[0])

        slack_user: Optional[dict[str, Any]] = None
        if user_result is not None:
            if user_result.ok and isinstance(user_result.data.get("user"), dict):
                slack_user = user_result.data["user"]
            elif parent.is_bot_message:
                raise IdentityResolutionError(
                    event.user_id, f"users.info failed: {user_result.error or 'missing_user'}"
                )
        return parent, slack_user

    async def _bind_company(self, scope: ChannelScope, actor: Actor) -> None:
        if scope.tag is not ChannelTag.PRIVATE_COMPANY or actor.customer is None:
            return
        if actor.customer.company_id == scope.company.id:
            return
        await self.records.set_customer_company(actor.customer.id, scope.company.id)

    async def _append_to_thread(
        self,
        event: SlackEvent,
        scope: ChannelScope,
        thread: SlackConversationThread,
    ) -> RouteResult:
        conversation = await self.records.get_conversation(thread.conversation_id)
        if conversation is None:
            logger.warning(
                "[slack_router] Thread %s:%s points at missing conversation %s",
                thread.slack_channel,
                thread.slack_thread_ts,
                thread.conversation_id,
            )
            return RouteResult(RouteAction.IGNORE, "conversation_missing", account_id=thread.account_id)

        if scope.tag is ChannelTag.PRIMARY:
            return await self._append_agent_reply(event, scope, conversation)

        actor = await resolve_author(event.user_id, scope.authorization, self.client, self.records)
        if actor.kind is ActorKind.BOT:
            return RouteResult(RouteAction.IGNORE, "bot_author", account_id=conversation.account_id)
        await self._bind_company(scope, actor)

        message = await self.records.create_message(
            conversation.account_id,
            conversation.id,
            event.text,
            SLACK_SOURCE,
            slack_ts=event.ts,
            **actor.sender_fields(),
        )
        if actor.kind is ActorKind.CUSTOMER:
            await self.notifier.mirror_customer_reply(
                conversation.account_id, conversation.id, actor.customer, event.text
            )
        return RouteResult(
            RouteAction.APPEND_TO_THREAD,
            f"{scope.tag.value}_thread_reply",
            account_id=conversation.account_id,
            conversation_id=conversation.id,
            message_id=message.id,
        )

    async def _append_agent_reply(
        self,
        event: SlackEvent,
        scope: ChannelScope,
        conversation: Conversation,
    ) -> RouteResult:
        actor = await resolve_agent_sender(
            event.user_id,
            scope.authorization,
            self.client,
            self.records,
            assignee_id=conversation.assignee_id,
        )
        if actor is None:
            return RouteResult(RouteAction.IGNORE, "no_agent", account_id=conversation.account_id)

        message = await self.records.create_message(
            conversation.account_id,
            conversation.id,
            event.text,
            SLACK_SOURCE,
            slack_ts=event.ts,
            **actor.sender_fields(),
        )

        changes: dict[str, Any] = {}
        if not conversation.read:
            changes["read"] = True
        if conversation.assignee_id is None:
            changes["assignee_id"] = actor.user_id
        if changes:
            await self.records.update_conversation(conversation.id, **changes)

        await self.notifier.forward_agent_reply(conversation.account_id, conversation.id, event.text)
        return RouteResult(
            RouteAction.APPEND_TO_THREAD,
            "primary_thread_reply",
            account_id=conversation.account_id,
            conversation_id=conversation.id,
            message_id=message.id,
        )

    async def _originate(
        self,
        event: SlackEvent,
        scope: ChannelScope,
        decision: RouteDecision,
        slack_user: Optional[dict[str, Any]],
    ) -> RouteResult:
        authorization = scope.authorization
        account_id = authorization.account_id
        actor = await resolve_author(
            event.user_id, authorization, self.client, self.records, slack_user=slack_user
        )
        if actor.kind is not ActorKind.CUSTOMER:
            return RouteResult(RouteAction.IGNORE, f"{actor.kind.value}_cannot_originate", account_id=account_id)
        await self._bind_company(scope, actor)

        # thread link last: redeliveries see it as a duplicate, so it must never
        # point at a conversation without its first message
        conversation = await self.records.create_conversation(account_id, actor.customer.id, SLACK_SOURCE)
        try:
            message = await self.records.create_message(
                account_id,
                conversation.id,
                event.text,
                SLACK_SOURCE,
                slack_ts=event.ts,
                **actor.sender_fields(),
            )
            await self.threads.create_thread(account_id, conversation.id, event.channel_id, event.thread_key)
        except DuplicateThreadError as exc:
            await self.records.discard_conversation(conversation.id)
            return await self._recover_thread_race(event, scope, actor, exc.existing)
        except (Exception, asyncio.CancelledError):
            logger.warning(
                "[slack_router] Discarding partial conversation %s for channel=%s thread=%s",
                conversation.id,
                event.channel_id,
                event.thread_key,
            )
            await self.records.discard_conversation(conversation.id)
            raise

        logger.info(
            "[slack_router] Created conversation %s from channel=%s thread=%s customer=%s",
            conversation.id,
            event.channel_id,
            event.thread_key,
            actor.customer.id,
        )
        await self.notifier.notify_new_conversation(
            conversation, actor.customer, event.text, event.channel_id
        )
        return RouteResult(
            decision.action,
            decision.reason,
            account_id=account_id,
            conversation_id=conversation.id,
            message_id=message.id,
        )

    async def _recover_thread_race(
        self,
        event: SlackEvent,
        scope: ChannelScope,
        actor: Actor,
        existing: SlackConversationThread,
    ) -> RouteResult:
        """Another delivery linked this thread first; join its conversation instead."""
        logger.info(
            "[slack_router] Lost thread race on %s:%s; using conversation %s",
            existing.slack_channel,
            existing.slack_thread_ts,
            existing.conversation_id,
        )
        if event.thread_ts is None:
            # The thread root is this very message, already stored by the winner
            return RouteResult(
                RouteAction.IGNORE,
                "duplicate_delivery",
                account_id=existing.account_id,
                conversation_id=existing.conversation_id,
            )

        message = await self.records.create_message(
            existing.account_id,
            existing.conversation_id,
            event.text,
            SLACK_SOURCE,
            slack_ts=event.ts,
            **actor.sender_fields(),
        )
        return RouteResult(
            RouteAction.APPEND_TO_THREAD,
            "duplicate_thread_race",
            account_id=existing.account_id,
            conversation_id=existing.conversation_id,
            message_id=message.id,
        )

    async def _handle_channel_join(self, event: SlackEvent) -> RouteResult:
        team_id = event.effective_team_id
        authorization = (
            await self.registry.find_authorization_by_team(team_id, SCOPE_SUPPORT) if team_id else None
        )
        if authorization is None:
            return RouteResult(RouteAction.IGNORE, "unknown_team")

        account_id = authorization.account_id
        account_channel_ids = frozenset(
            a.channel_id for a in await self.registry.list_authorizations(account_id)
        )
        decision = classify_event(event, None, account_channel_ids=account_channel_ids)
        if decision.action is not RouteAction.CREATE_COMPANY:
            return RouteResult(decision.action, decision.reason, account_id=account_id)

        joined_by = "bot" if event.user_id == authorization.bot_user_id else "user"
        existing = await self.records.find_company_by_slack_channel(account_id, event.channel_id)
        if existing is not None:
            return RouteResult(
                RouteAction.CREATE_COMPANY,
                "company_exists",
                account_id=account_id,
                company_id=existing.id,
            )

        result = await self.client.retrieve_channel_info(authorization.access_token, event.channel_id)
        if not result.ok:
            raise SlackApiError("conversations.info", result.error)
        channel: dict[str, Any] = result.data.get("channel") or {}
        channel_name = channel.get("name") or event.channel_id
        description = (channel.get("purpose") or {}).get("value") or (channel.get("topic") or {}).get("value")

        company, created = await self.records.find_or_create_company_by_slack_channel(
            account_id,
            event.channel_id,
            name=channel_name,
            description=description or None,
            channel_name=channel.get("name"),
        )
        logger.info(
            "[slack_router] %s company %s for channel=%s (joined by %s, inviter=%s)",
            "Created" if created else "Found",
            company.id,
            event.channel_id,
            joined_by,
            event.inviter,
        )
        return RouteResult(
            RouteAction.CREATE_COMPANY,
            "company_created" if created else "company_exists",
            account_id=account_id,
            company_id=company.id,
        )
