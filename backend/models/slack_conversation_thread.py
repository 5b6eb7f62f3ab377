"""
Link between a conversation and a Slack thread in one channel.

Keyed by (account_id, slack_channel, slack_thread_ts); the unique index is
what makes concurrent thread creation safe across workers.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.database import Base


class SlackConversationThread(Base):
    """Persisted (conversation, channel) -> Slack thread_ts mapping."""

    __tablename__ = "slack_conversation_threads"
    __table_args__ = (
        Index(
            "uq_slack_conversation_threads_account_channel_ts",
            "account_id",
            "slack_channel",
            "slack_thread_ts",
            unique=True,
        ),
        Index(
            "ix_slack_conversation_threads_channel_ts",
            "slack_channel",
            "slack_thread_ts",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    slack_channel: Mapped[str] = mapped_column(String(100), nullable=False)
    slack_thread_ts: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=True
    )
