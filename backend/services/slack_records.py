"""
Record store used by the Slack event router for its side effects.

Covers agents (read-only), customers, companies, conversations and messages.
Find-or-create operations are idempotent under concurrent webhook deliveries:
they insert with ``ON CONFLICT DO NOTHING`` and re-read the winning row.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional, Protocol
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from models.company import Company
from models.conversation import Conversation
from models.customer import Customer
from models.database import get_session
from models.message import Message
from models.user import User

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    async def find_user_by_email(self, account_id: UUID, email: str) -> Optional[User]: ...

    async def get_primary_user(self, account_id: UUID) -> Optional[User]: ...

    async def find_or_create_customer(
        self,
        account_id: UUID,
        email: str,
        name: Optional[str] = None,
        time_zone: Optional[str] = None,
        slack_user_id: Optional[str] = None,
    ) -> Customer: ...

    async def set_customer_company(self, customer_id: UUID, company_id: UUID) -> Customer: ...

    async def find_company_by_slack_channel(
        self, account_id: UUID, channel_id: str
    ) -> Optional[Company]: ...

    async def find_or_create_company_by_slack_channel(
        self,
        account_id: UUID,
        channel_id: str,
        name: str,
        description: Optional[str] = None,
        channel_name: Optional[str] = None,
    ) -> tuple[Company, bool]: ...

    async def create_conversation(
        self, account_id: UUID, customer_id: UUID, source: str
    ) -> Conversation: ...

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]: ...

    async def update_conversation(self, conversation_id: UUID, **changes: Any) -> Conversation: ...

    async def discard_conversation(self, conversation_id: UUID) -> None: ...

    async def create_message(
        self,
        account_id: UUID,
        conversation_id: UUID,
        body: str,
        source: str,
        customer_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        slack_ts: Optional[str] = None,
    ) -> Message: ...


class SqlRecordStore:
    """:class:`RecordStore` backed by PostgreSQL through SQLAlchemy async sessions."""

    async def find_user_by_email(self, account_id: UUID, email: str) -> Optional[User]:
        async with get_session() as session:
            result = await session.execute(
                select(User)
                .where(User.account_id == account_id)
                .where(func.lower(User.email) == email.strip().lower())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_primary_user(self, account_id: UUID) -> Optional[User]:
        """Oldest agent of the account."""
        async with get_session() as session:
            result = await session.execute(
                select(User)
                .where(User.account_id == account_id)
                .order_by(User.created_at)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def find_or_create_customer(
        self,
        account_id: UUID,
        email: str,
        name: Optional[str] = None,
        time_zone: Optional[str] = None,
        slack_user_id: Optional[str] = None,
    ) -> Customer:
        normalized_email = email.strip().lower()
        now = datetime.utcnow()
        async with get_session() as session:
            stmt = (
                pg_insert(Customer)
                .values(
                    id=uuid.uuid4(),
                    account_id=account_id,
                    email=normalized_email,
                    name=name,
                    time_zone=time_zone,
                    slack_user_id=slack_user_id,
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(index_elements=["account_id", "email"])
                .returning(Customer.id)
            )
            created_id = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()

            result = await session.execute(
                select(Customer)
                .where(Customer.account_id == account_id)
                .where(Customer.email == normalized_email)
            )
            customer = result.scalar_one()

            if created_id is None and slack_user_id and not customer.slack_user_id:
                customer.slack_user_id = slack_user_id
                customer.updated_at = now
                await session.commit()

        logger.info(
            "[slack_records] %s customer %s for account=%s",
            "Created" if created_id is not None else "Found",
            customer.id,
            account_id,
        )
        return customer

    async def set_customer_company(self, customer_id: UUID, company_id: UUID) -> Customer:
        async with get_session() as session:
            await session.execute(
                update(Customer)
                .where(Customer.id == customer_id)
                .values(company_id=company_id, updated_at=datetime.utcnow())
            )
            await session.commit()
            customer = await session.get(Customer, customer_id, populate_existing=True)
        logger.info(
            "[slack_records] Bound customer %s to company %s",
            customer_id,
            company_id,
        )
        return customer

    async def find_company_by_slack_channel(
        self, account_id: UUID, channel_id: str
    ) -> Optional[Company]:
        async with get_session() as session:
            result = await session.execute(
                select(Company)
                .where(Company.account_id == account_id)
                .where(Company.slack_channel_id == channel_id)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def find_or_create_company_by_slack_channel(
        self,
        account_id: UUID,
        channel_id: str,
        name: str,
        description: Optional[str] = None,
        channel_name: Optional[str] = None,
    ) -> tuple[Company, bool]:
        async with get_session() as session:
            stmt = (
                pg_insert(Company)
                .values(
                    id=uuid.uuid4(),
                    account_id=account_id,
                    name=name,
                    description=description,
                    slack_channel_id=channel_id,
                    slack_channel_name=channel_name,
                    created_at=datetime.utcnow(),
                )
                .on_conflict_do_nothing(index_elements=["account_id", "slack_channel_id"])
                .returning(Company.id)
            )
            created_id = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()

            result = await session.execute(
                select(Company)
                .where(Company.account_id == account_id)
                .where(Company.slack_channel_id == channel_id)
            )
            company = result.scalar_one()
        return company, created_id is not None

    async def create_conversation(
        self, account_id: UUID, customer_id: UUID, source: str
    ) -> Conversation:
        async with get_session() as session:
            conversation = Conversation(
                account_id=account_id,
                customer_id=customer_id,
                source=source,
                status="open",
                read=False,
            )
            session.add(conversation)
            await session.commit()
        return conversation

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        async with get_session() as session:
            return await session.get(Conversation, conversation_id)

    async def update_conversation(self, conversation_id: UUID, **changes: Any) -> Conversation:
        async with get_session() as session:
            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(**changes, updated_at=datetime.utcnow())
            )
            await session.commit()
            conversation = await session.get(Conversation, conversation_id, populate_existing=True)
        return conversation

    async def discard_conversation(self, conversation_id: UUID) -> None:
        """Delete a conversation that never received a message (lost thread race)."""
        async with get_session() as session:
            await session.execute(delete(Conversation).where(Conversation.id == conversation_id))
            await session.commit()

    async def create_message(
        self,
        account_id: UUID,
        conversation_id: UUID,
        body: str,
        source: str,
        customer_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        slack_ts: Optional[str] = None,
    ) -> Message:
        async with get_session() as session:
            message = Message(
                account_id=account_id,
                conversation_id=conversation_id,
                body=body,
                source=source,
                customer_id=customer_id,
                user_id=user_id,
                slack_ts=slack_ts,
            )
            session.add(message)
            await session.commit()
        return message
