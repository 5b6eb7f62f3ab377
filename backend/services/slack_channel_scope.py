"""
Decide which Slack authorization governs a channel and what kind of channel it is.

Tags, in precedence order:
- PRIMARY: the account's own notification channel
- PRIVATE_COMPANY: a channel bound to one of the account's companies
- SUPPORT: a channel with its own support authorization
- UNKNOWN: none of the above, or the event's team does not match
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from models.company import Company
from models.slack_authorization import SlackAuthorization
from services.slack_authorizations import AuthorizationRegistry
from services.slack_records import RecordStore

logger = logging.getLogger(__name__)


class ChannelTag(str, Enum):
    PRIMARY = "primary"
    PRIVATE_COMPANY = "private_company"
    SUPPORT = "support"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ChannelScope:
    tag: ChannelTag
    authorization: Optional[SlackAuthorization] = None
    company: Optional[Company] = None
    reason: Optional[str] = None

    @classmethod
    def unknown(cls, reason: str) -> "ChannelScope":
        return cls(tag=ChannelTag.UNKNOWN, reason=reason)

    @property
    def is_known(self) -> bool:
        return self.tag is not ChannelTag.UNKNOWN

    @property
    def accepts_new_conversations(self) -> bool:
        return self.tag in (ChannelTag.SUPPORT, ChannelTag.PRIVATE_COMPANY)


def team_matches(
    authorization: SlackAuthorization,
    team_id: Optional[str],
    is_ext_shared_channel: bool = False,
    shared_team_id: Optional[str] = None,
) -> bool:
    """
    Check the event's team against the authorization's team.

    On externally shared channels ``team`` names the sender's workspace, so
    only the explicit ``shared_team_id`` is trusted there. Events that carry
    no team at all are not checked.
    """
    if is_ext_shared_channel:
        return shared_team_id is not None and shared_team_id == authorization.team_id
    if team_id is None:
        return True
    return team_id == authorization.team_id


async def resolve_channel_scope(
    account_id: UUID,
    channel_id: str,
    team_id: Optional[str],
    registry: AuthorizationRegistry,
    records: RecordStore,
    is_ext_shared_channel: bool = False,
    shared_team_id: Optional[str] = None,
) -> ChannelScope:
    """Resolve the governing authorization and tag for ``channel_id`` in an account."""
    tag = ChannelTag.UNKNOWN
    authorization: Optional[SlackAuthorization] = None
    company: Optional[Company] = None

    primary = await registry.get_primary_authorization(account_id)
    if primary is not None and primary.channel_id == channel_id:
        tag, authorization = ChannelTag.PRIMARY, primary
    else:
        company = await records.find_company_by_slack_channel(account_id, channel_id)
        if company is not None:
            authorization = await registry.find_support_authorization(account_id)
            tag = ChannelTag.PRIVATE_COMPANY
        else:
            authorization = await registry.get_support_authorization(account_id, channel_id)
            tag = ChannelTag.SUPPORT

    if authorization is None:
        logger.info(
            "[slack_scope] No authorization governs channel=%s account=%s",
            channel_id,
            account_id,
        )
        return ChannelScope.unknown("unknown_channel")

    if not team_matches(authorization, team_id, is_ext_shared_channel, shared_team_id):
        logger.warning(
            "[slack_scope] Team mismatch channel=%s account=%s event_team=%s shared=%s shared_team=%s expected=%s",
            channel_id,
            account_id,
            team_id,
            is_ext_shared_channel,
            shared_team_id,
            authorization.team_id,
        )
        return ChannelScope.unknown("team_mismatch")

    return ChannelScope(tag=tag, authorization=authorization, company=company)
