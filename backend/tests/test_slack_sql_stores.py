import asyncio
import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql

from models.slack_authorization import SCOPE_SUPPORT, SlackAuthorization
from services import slack_records, slack_threads
from services.slack_errors import DuplicateThreadError
from services.slack_records import SqlRecordStore
from services.slack_threads import SqlThreadIndex


class _FakeExecuteResult:
    def __init__(self, rows):
        self._rows = rows

    def scalar_one_or_none(self):
        if not self._rows:
            return None
        return self._rows[0]

    def scalar_one(self):
        [row] = self._rows
        return row


class _FakeSession:
    def __init__(self, query_results):
        self._query_results = list(query_results)
        self.statements = []
        self.commits = 0

    async def execute(self, statement):
        self.statements.append(statement)
        return _FakeExecuteResult(self._query_results.pop(0))

    async def commit(self):
        self.commits += 1


class _FakeSessionContext:
    def __init__(self, session):
        self._session = session

    async def __aenter__(self):
        return self._session

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _use_session(monkeypatch, module, query_results) -> _FakeSession:
    session = _FakeSession(query_results)
    monkeypatch.setattr(module, "get_session", lambda: _FakeSessionContext(session))
    return session


def _sql(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


def test_create_thread_returns_inserted_row(monkeypatch) -> None:
    account_id, conversation_id = uuid.uuid4(), uuid.uuid4()
    row = SimpleNamespace(conversation_id=conversation_id, slack_channel="CSUPPORT", slack_thread_ts="50.1")
    session = _use_session(monkeypatch, slack_threads, [[row]])

    created = asyncio.run(SqlThreadIndex().create_thread(account_id, conversation_id, "CSUPPORT", "50.1"))

    assert created is row
    assert session.commits == 1
    [insert] = session.statements
    sql = _sql(insert)
    assert "ON CONFLICT (account_id, slack_channel, slack_thread_ts) DO NOTHING" in sql
    assert "RETURNING" in sql


def test_create_thread_conflict_raises_with_existing_row(monkeypatch) -> None:
    account_id = uuid.uuid4()
    winner = SimpleNamespace(conversation_id=uuid.uuid4(), slack_channel="CSUPPORT", slack_thread_ts="50.1")
    session = _use_session(monkeypatch, slack_threads, [[], [winner]])

    with pytest.raises(DuplicateThreadError) as exc_info:
        asyncio.run(SqlThreadIndex().create_thread(account_id, uuid.uuid4(), "CSUPPORT", "50.1"))

    assert exc_info.value.existing is winner
    assert session.commits == 1
    assert len(session.statements) == 2
    assert _sql(session.statements[1]).startswith("SELECT")


def test_find_or_create_customer_backfills_slack_user_id(monkeypatch) -> None:
    account_id = uuid.uuid4()
    existing = SimpleNamespace(id=uuid.uuid4(), email="jane@customer.io", slack_user_id=None, updated_at=None)
    session = _use_session(monkeypatch, slack_records, [[], [existing]])

    customer = asyncio.run(
        SqlRecordStore().find_or_create_customer(account_id, " Jane@Customer.IO ", slack_user_id="UCUST")
    )

    assert customer is existing
    assert customer.slack_user_id == "UCUST"
    assert customer.updated_at is not None
    assert session.commits == 2
    insert = session.statements[0].compile(dialect=postgresql.dialect())
    assert insert.params["email"] == "jane@customer.io"
    assert "ON CONFLICT (account_id, email) DO NOTHING" in str(insert)


def test_find_or_create_customer_keeps_linked_slack_user_id(monkeypatch) -> None:
    existing = SimpleNamespace(id=uuid.uuid4(), email="jane@customer.io", slack_user_id="UOLD", updated_at=None)
    session = _use_session(monkeypatch, slack_records, [[], [existing]])

    customer = asyncio.run(
        SqlRecordStore().find_or_create_customer(uuid.uuid4(), "jane@customer.io", slack_user_id="UNEW")
    )

    assert customer.slack_user_id == "UOLD"
    assert session.commits == 1


def test_authorization_scope_column_defaults_to_support() -> None:
    assert SlackAuthorization.__table__.c.scope.default.arg == SCOPE_SUPPORT
