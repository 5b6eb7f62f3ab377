"""
Resolve a Slack user id to an internal actor (agent, customer or our bot).

Matching is by the email on the Slack profile: an agent of the account with
that email wins, otherwise a customer is found or created for it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from connectors.slack import (
    SlackClient,
    extract_slack_display_name,
    extract_slack_email,
    extract_slack_timezone,
)
from models.customer import Customer
from models.slack_authorization import SlackAuthorization
from models.user import User
from services.slack_errors import IdentityResolutionError, SlackApiError
from services.slack_records import RecordStore

logger = logging.getLogger(__name__)


class ActorKind(str, Enum):
    AGENT = "agent"
    CUSTOMER = "customer"
    BOT = "bot"


@dataclass(frozen=True)
class Actor:
    kind: ActorKind
    slack_user_id: str
    user_id: Optional[UUID] = None
    customer: Optional[Customer] = None

    @classmethod
    def agent(cls, slack_user_id: str, user: User) -> "Actor":
        return cls(kind=ActorKind.AGENT, slack_user_id=slack_user_id, user_id=user.id)

    @property
    def customer_id(self) -> Optional[UUID]:
        return self.customer.id if self.customer is not None else None

    def sender_fields(self) -> dict[str, Optional[UUID]]:
        """``user_id``/``customer_id`` keyword arguments for a new message."""
        if self.kind is ActorKind.AGENT:
            return {"user_id": self.user_id, "customer_id": None}
        return {"user_id": None, "customer_id": self.customer_id}


async def fetch_slack_profile(
    client: SlackClient,
    authorization: SlackAuthorization,
    slack_user_id: str,
) -> dict[str, Any]:
    """users.info for ``slack_user_id``; raises :class:`SlackApiError` on failure."""
    result = await client.retrieve_user_info(authorization.access_token, slack_user_id)
    if not result.ok:
        raise SlackApiError("users.info", result.error)
    slack_user = result.data.get("user")
    if not isinstance(slack_user, dict):
        raise SlackApiError("users.info", "missing_user")
    return slack_user


async def resolve_author(
    slack_user_id: str,
    authorization: SlackAuthorization,
    client: SlackClient,
    records: RecordStore,
    slack_user: Optional[dict[str, Any]] = None,
) -> Actor:
    """
    Resolve the author of an event.

    Args:
        slack_user_id: Slack user id from the event
        authorization: Governing authorization (credentials and bot user id)
        client: Slack client used when ``slack_user`` is not supplied
        records: Record store for agent lookup and customer find-or-create
        slack_user: users.info payload fetched earlier, if any

    Raises:
        IdentityResolutionError: profile lookup failed or carries no email
    """
    if authorization.bot_user_id and slack_user_id == authorization.bot_user_id:
        return Actor(kind=ActorKind.BOT, slack_user_id=slack_user_id)

    if slack_user is None:
        try:
            slack_user = await fetch_slack_profile(client, authorization, slack_user_id)
        except SlackApiError as exc:
            raise IdentityResolutionError(slack_user_id, str(exc)) from exc

    slack_email = extract_slack_email(slack_user)
    if not slack_email:
        raise IdentityResolutionError(slack_user_id, "profile has no email")

    account_id = authorization.account_id
    user = await records.find_user_by_email(account_id, slack_email)
    if user is not None:
        logger.info(
            "[slack_identity] Matched Slack user=%s email=%s to agent=%s",
            slack_user_id,
            slack_email,
            user.id,
        )
        return Actor.agent(slack_user_id, user)

    customer = await records.find_or_create_customer(
        account_id,
        slack_email,
        name=extract_slack_display_name(slack_user),
        time_zone=extract_slack_timezone(slack_user),
        slack_user_id=slack_user_id,
    )
    logger.info(
        "[slack_identity] Resolved Slack user=%s email=%s to customer=%s",
        slack_user_id,
        slack_email,
        customer.id,
    )
    return Actor(kind=ActorKind.CUSTOMER, slack_user_id=slack_user_id, customer=customer)


async def resolve_agent_sender(
    slack_user_id: str,
    authorization: SlackAuthorization,
    client: SlackClient,
    records: RecordStore,
    assignee_id: Optional[UUID] = None,
) -> Optional[Actor]:
    """
    Resolve the agent behind a reply in the account's primary channel.

    Only agents post in the primary channel, so no customer is ever created
    here. When the Slack profile does not map to an agent we fall back to the
    conversation's assignee and then to the account's oldest agent. Returns
    None when the account has no agent at all.
    """
    try:
        slack_user = await fetch_slack_profile(client, authorization, slack_user_id)
    except SlackApiError as exc:
        logger.info(
            "[slack_identity] Primary channel author %s unresolved (%s); falling back to an agent",
            slack_user_id,
            exc,
        )
    else:
        slack_email = extract_slack_email(slack_user)
        user = await records.find_user_by_email(authorization.account_id, slack_email) if slack_email else None
        if user is not None:
            return Actor.agent(slack_user_id, user)
        logger.info(
            "[slack_identity] Primary channel author %s (%s) is not an agent; falling back",
            slack_user_id,
            slack_email,
        )

    if assignee_id is not None:
        return Actor(kind=ActorKind.AGENT, slack_user_id=slack_user_id, user_id=assignee_id)

    primary_user = await records.get_primary_user(authorization.account_id)
    if primary_user is None:
        logger.warning(
            "[slack_identity] Account %s has no agents to attribute Slack user=%s to",
            authorization.account_id,
            slack_user_id,
        )
        return None
    return Actor.agent(slack_user_id, primary_user)
