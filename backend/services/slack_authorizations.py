"""
Read-through lookups of Slack authorizations.

The router never writes authorizations; it only reads them per request. There
is no process-wide cache, so a revoked authorization stops matching on the
next event.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy import select

from models.database import get_session
from models.slack_authorization import SCOPE_PRIMARY, SCOPE_SUPPORT, SlackAuthorization

logger = logging.getLogger(__name__)


class AuthorizationRegistry(Protocol):
    async def get_primary_authorization(self, account_id: UUID) -> Optional[SlackAuthorization]: ...

    async def get_support_authorization(
        self, account_id: UUID, channel_id: str
    ) -> Optional[SlackAuthorization]: ...

    async def find_support_authorization(self, account_id: UUID) -> Optional[SlackAuthorization]: ...

    async def find_authorization_by_team(
        self, team_id: str, scope: str = SCOPE_SUPPORT
    ) -> Optional[SlackAuthorization]: ...

    async def list_authorizations(self, account_id: UUID) -> list[SlackAuthorization]: ...


class SqlAuthorizationRegistry:
    """:class:`AuthorizationRegistry` backed by the ``slack_authorizations`` table."""

    async def get_primary_authorization(self, account_id: UUID) -> Optional[SlackAuthorization]:
        async with get_session() as session:
            result = await session.execute(
                select(SlackAuthorization)
                .where(SlackAuthorization.account_id == account_id)
                .where(SlackAuthorization.scope == SCOPE_PRIMARY)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_support_authorization(
        self, account_id: UUID, channel_id: str
    ) -> Optional[SlackAuthorization]:
        async with get_session() as session:
            result = await session.execute(
                select(SlackAuthorization)
                .where(SlackAuthorization.account_id == account_id)
                .where(SlackAuthorization.scope == SCOPE_SUPPORT)
                .where(SlackAuthorization.channel_id == channel_id)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def find_support_authorization(self, account_id: UUID) -> Optional[SlackAuthorization]:
        """Oldest support authorization of the account, used for company channels."""
        async with get_session() as session:
            result = await session.execute(
                select(SlackAuthorization)
                .where(SlackAuthorization.account_id == account_id)
                .where(SlackAuthorization.scope == SCOPE_SUPPORT)
                .order_by(SlackAuthorization.created_at)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def find_authorization_by_team(
        self, team_id: str, scope: str = SCOPE_SUPPORT
    ) -> Optional[SlackAuthorization]:
        async with get_session() as session:
            result = await session.execute(
                select(SlackAuthorization)
                .where(SlackAuthorization.team_id == team_id)
                .where(SlackAuthorization.scope == scope)
                .order_by(SlackAuthorization.created_at)
            )
            authorizations = list(result.scalars().all())

        if len(authorizations) > 1:
            logger.info(
                "[slack_authorizations] %d %s authorizations for team=%s; using the oldest account=%s",
                len(authorizations),
                scope,
                team_id,
                authorizations[0].account_id,
            )
        return authorizations[0] if authorizations else None

    async def list_authorizations(self, account_id: UUID) -> list[SlackAuthorization]:
        async with get_session() as session:
            result = await session.execute(
                select(SlackAuthorization).where(SlackAuthorization.account_id == account_id)
            )
            return list(result.scalars().all())
