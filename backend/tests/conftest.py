"""Shared fixtures: a one-account Slack workspace backed by in-memory fakes."""
import uuid

import pytest

from models.slack_authorization import SCOPE_PRIMARY, SCOPE_SUPPORT
from services.slack_event_router import SlackEventRouter
from slack_fakes import (
    AGENT_EMAIL,
    AGENT_SLACK_ID,
    CUSTOMER_EMAIL,
    CUSTOMER_SLACK_ID,
    PRIMARY_CHANNEL,
    SUPPORT_CHANNEL,
    FakeSlackClient,
    InMemoryRecordStore,
    InMemoryRegistry,
    InMemoryThreadIndex,
)


@pytest.fixture
def slack_client() -> FakeSlackClient:
    client = FakeSlackClient()
    client.add_user(AGENT_SLACK_ID, AGENT_EMAIL, "Alex Agent")
    client.add_user(CUSTOMER_SLACK_ID, CUSTOMER_EMAIL, "Jane Doe")
    return client


@pytest.fixture
def account_id() -> uuid.UUID:
    return uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture
def registry(account_id) -> InMemoryRegistry:
    registry = InMemoryRegistry()
    registry.add(account_id, SCOPE_PRIMARY, PRIMARY_CHANNEL)
    registry.add(account_id, SCOPE_SUPPORT, SUPPORT_CHANNEL)
    return registry


@pytest.fixture
def threads() -> InMemoryThreadIndex:
    return InMemoryThreadIndex()


@pytest.fixture
def records(account_id) -> InMemoryRecordStore:
    records = InMemoryRecordStore()
    records.add_user(account_id, AGENT_EMAIL)
    return records


@pytest.fixture
def event_router(slack_client, registry, threads, records) -> SlackEventRouter:
    return SlackEventRouter(client=slack_client, registry=registry, threads=threads, records=records)

