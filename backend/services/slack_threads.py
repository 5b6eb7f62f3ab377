"""
Thread index: which conversation a Slack thread belongs to.

Threads are unique per (account_id, slack_channel, slack_thread_ts). Creation
uses ``INSERT ... ON CONFLICT DO NOTHING`` so that two deliveries racing on the
same thread cannot both win; the loser gets :class:`DuplicateThreadError`
carrying the row that won.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from models.database import get_session
from models.slack_conversation_thread import SlackConversationThread
from services.slack_errors import DuplicateThreadError

logger = logging.getLogger(__name__)


class ThreadIndex(Protocol):
    async def find_thread(
        self, channel_id: str, thread_ts: str
    ) -> Optional[SlackConversationThread]: ...

    async def list_threads(self, conversation_id: UUID) -> list[SlackConversationThread]: ...

    async def create_thread(
        self,
        account_id: UUID,
        conversation_id: UUID,
        channel_id: str,
        thread_ts: str,
    ) -> SlackConversationThread: ...


class SqlThreadIndex:
    """:class:`ThreadIndex` backed by ``slack_conversation_threads``."""

    async def find_thread(
        self, channel_id: str, thread_ts: str
    ) -> Optional[SlackConversationThread]:
        async with get_session() as session:
            result = await session.execute(
                select(SlackConversationThread)
                .where(SlackConversationThread.slack_channel == channel_id)
                .where(SlackConversationThread.slack_thread_ts == thread_ts)
                .order_by(SlackConversationThread.created_at)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_threads(self, conversation_id: UUID) -> list[SlackConversationThread]:
        async with get_session() as session:
            result = await session.execute(
                select(SlackConversationThread)
                .where(SlackConversationThread.conversation_id == conversation_id)
                .order_by(SlackConversationThread.created_at)
            )
            return list(result.scalars().all())

    async def create_thread(
        self,
        account_id: UUID,
        conversation_id: UUID,
        channel_id: str,
        thread_ts: str,
    ) -> SlackConversationThread:
        async with get_session() as session:
            stmt = (
                pg_insert(SlackConversationThread)
                .values(
                    id=uuid.uuid4(),
                    account_id=account_id,
                    conversation_id=conversation_id,
                    slack_channel=channel_id,
                    slack_thread_ts=thread_ts,
                    created_at=datetime.utcnow(),
                )
                .on_conflict_do_nothing(
                    index_elements=["account_id", "slack_channel", "slack_thread_ts"],
                )
                .returning(SlackConversationThread)
            )
            result = await session.execute(stmt)
            created = result.scalar_one_or_none()
            await session.commit()

            if created is not None:
                logger.info(
                    "[slack_threads] Linked conversation %s to thread %s:%s",
                    conversation_id,
                    channel_id,
                    thread_ts,
                )
                return created

            existing_result = await session.execute(
                select(SlackConversationThread)
                .where(SlackConversationThread.account_id == account_id)
                .where(SlackConversationThread.slack_channel == channel_id)
                .where(SlackConversationThread.slack_thread_ts == thread_ts)
            )
            existing = existing_result.scalar_one()

        logger.info(
            "[slack_threads] Thread %s:%s already linked to conversation %s",
            channel_id,
            thread_ts,
            existing.conversation_id,
        )
        raise DuplicateThreadError(existing)
