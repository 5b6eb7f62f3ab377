"""
Slack authorization model.

One row per authorized Slack channel of an account:
- scope='primary': the account's own channel where new conversations are
  announced and agents reply in threads (at most one per account)
- scope='support': a channel where external users open conversations
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.database import Base

SCOPE_PRIMARY = "primary"
SCOPE_SUPPORT = "support"


class SlackAuthorization(Base):
    """Channel-scoped Slack credentials held by an account."""

    __tablename__ = "slack_authorizations"
    __table_args__ = (
        Index(
            "uq_slack_authorizations_account_primary",
            "account_id",
            unique=True,
            postgresql_where=text("scope = 'primary'"),
        ),
        Index(
            "uq_slack_authorizations_account_support_channel",
            "account_id",
            "channel_id",
            unique=True,
            postgresql_where=text("scope = 'support'"),
        ),
        Index("ix_slack_authorizations_team", "team_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True
    )
    scope: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SCOPE_SUPPORT
    )  # "primary" | "support"
    team_id: Mapped[str] = mapped_column(String(100), nullable=False)
    team_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    channel: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    channel_id: Mapped[str] = mapped_column(String(100), nullable=False)
    bot_user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    authed_user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=True
    )
