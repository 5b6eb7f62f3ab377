"""
Outbound Slack notifications triggered by inbound events.

- New conversations are announced in the account's primary channel; the
  announcement's ts becomes the primary-channel thread of the conversation.
- Customer replies are mirrored into that primary-channel thread.
- Agent replies written in the primary channel are forwarded to the
  conversation's support/company channel threads.

Failures here are logged and never undo the inbound side effects.
"""
from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from connectors.slack import SlackClient
from models.conversation import Conversation
from models.customer import Customer
from models.slack_authorization import SlackAuthorization
from models.slack_conversation_thread import SlackConversationThread
from services.slack_authorizations import AuthorizationRegistry
from services.slack_errors import DuplicateThreadError
from services.slack_threads import ThreadIndex

logger = logging.getLogger(__name__)


def _customer_label(customer: Optional[Customer]) -> str:
    if customer is None:
        return "Anonymous User"
    return customer.name or customer.email or "Anonymous User"


class SlackNotifier:
    """Posts acknowledgments through the Slack client on behalf of the router."""

    def __init__(
        self,
        client: SlackClient,
        registry: AuthorizationRegistry,
        threads: ThreadIndex,
    ) -> None:
        self.client = client
        self.registry = registry
        self.threads = threads

    async def _post(
        self,
        authorization: SlackAuthorization,
        payload: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        result = await self.client.send_message(authorization.access_token, payload)
        if not result.ok:
            logger.warning(
                "[slack_notifications] chat.postMessage failed channel=%s thread=%s error=%s",
                payload.get("channel"),
                payload.get("thread_ts"),
                result.error,
            )
            return None
        return result.data

    async def notify_new_conversation(
        self,
        conversation: Conversation,
        customer: Optional[Customer],
        body: str,
        source_channel_id: str,
    ) -> Optional[SlackConversationThread]:
        """Announce a new conversation in the primary channel and link the thread."""
        primary = await self.registry.get_primary_authorization(conversation.account_id)
        if primary is None or primary.channel_id == source_channel_id:
            return None

        response = await self._post(
            primary,
            {
                "channel": primary.channel_id,
                "text": f"*:wave: {_customer_label(customer)}* (via <#{source_channel_id}>): {body}",
                "unfurl_links": False,
            },
        )
        thread_ts = (response or {}).get("ts")
        if not thread_ts:
            return None

        try:
            return await self.threads.create_thread(
                conversation.account_id,
                conversation.id,
                primary.channel_id,
                str(thread_ts),
            )
        except DuplicateThreadError as exc:
            logger.warning(
                "[slack_notifications] Primary thread %s already linked to conversation %s",
                thread_ts,
                exc.existing.conversation_id,
            )
            return None

    async def mirror_customer_reply(
        self,
        account_id: UUID,
        conversation_id: UUID,
        customer: Optional[Customer],
        body: str,
    ) -> int:
        """Copy a customer's reply into the conversation's primary-channel thread."""
        primary = await self.registry.get_primary_authorization(account_id)
        if primary is None:
            return 0

        posted = 0
        for thread in await self.threads.list_threads(conversation_id):
            if thread.slack_channel != primary.channel_id:
                continue
            response = await self._post(
                primary,
                {
                    "channel": thread.slack_channel,
                    "thread_ts": thread.slack_thread_ts,
                    "text": f"*{_customer_label(customer)}*: {body}",
                },
            )
            if response is not None:
                posted += 1
        return posted

    async def forward_agent_reply(
        self,
        account_id: UUID,
        conversation_id: UUID,
        body: str,
    ) -> int:
        """Forward an agent's primary-channel reply to the customer-facing threads."""
        primary = await self.registry.get_primary_authorization(account_id)
        primary_channel_id = primary.channel_id if primary is not None else None

        posted = 0
        for thread in await self.threads.list_threads(conversation_id):
            if thread.slack_channel == primary_channel_id:
                continue
            authorization = await self.registry.get_support_authorization(
                account_id, thread.slack_channel
            ) or await self.registry.find_support_authorization(account_id)
            if authorization is None:
                logger.info(
                    "[slack_notifications] No support authorization to forward into channel=%s",
                    thread.slack_channel,
                )
                continue
            response = await self._post(
                authorization,
                {
                    "channel": thread.slack_channel,
                    "thread_ts": thread.slack_thread_ts,
                    "text": body,
                },
            )
            if response is not None:
                posted += 1
        return posted
