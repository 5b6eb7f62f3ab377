import asyncio

from api.routes import slack_events
from services.slack_event_router import RouteAction, RouteResult
from slack_fakes import message_payload


def test_thread_lock_manager_serializes_same_thread_work() -> None:
    manager = slack_events.SlackThreadLockManager()
    lock_key = manager.build_lock_key("T1", "C1", "123.456")
    active = 0
    max_active = 0

    async def _worker() -> None:
        nonlocal active, max_active
        async with manager.thread_lock(lock_key):
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.02)
            active -= 1

    async def _run() -> None:
        await asyncio.gather(_worker(), _worker(), _worker())

    asyncio.run(_run())

    assert max_active == 1
    assert manager._locks == {}
    assert manager._lock_refs == {}


class _SlowRouter:
    def __init__(self, delay: float = 0.03) -> None:
        self.delay = delay
        self.overlap = 0
        self.max_overlap = 0
        self.handled: list[str] = []

    async def handle_event(self, event):
        self.overlap += 1
        self.max_overlap = max(self.max_overlap, self.overlap)
        await asyncio.sleep(self.delay)
        self.overlap -= 1
        self.handled.append(event.event_id)
        return RouteResult(RouteAction.APPEND_TO_THREAD, "test")


async def _never_duplicate(_event_id: str) -> bool:
    return False


def test_process_event_callback_serializes_same_thread_events(monkeypatch) -> None:
    monkeypatch.setattr(slack_events, "is_duplicate_event", _never_duplicate)
    fake_router = _SlowRouter()

    async def _run() -> None:
        await asyncio.gather(
            slack_events._process_event_callback_impl(
                message_payload("C123", "U1", "first", "111.333", thread_ts="111.222", event_id="Ev1"), fake_router
            ),
            slack_events._process_event_callback_impl(
                message_payload("C123", "U2", "second", "111.444", thread_ts="111.222", event_id="Ev2"), fake_router
            ),
        )

    asyncio.run(_run())

    assert fake_router.max_overlap == 1
    assert sorted(fake_router.handled) == ["Ev1", "Ev2"]


def test_process_event_callback_runs_different_threads_concurrently(monkeypatch) -> None:
    monkeypatch.setattr(slack_events, "is_duplicate_event", _never_duplicate)
    fake_router = _SlowRouter()

    async def _run() -> None:
        await asyncio.gather(
            slack_events._process_event_callback_impl(
                message_payload("C123", "U1", "a", "1.1", thread_ts="1.0", event_id="Ev1"), fake_router
            ),
            slack_events._process_event_callback_impl(
                message_payload("C123", "U1", "b", "2.1", thread_ts="2.0", event_id="Ev2"), fake_router
            ),
        )

    asyncio.run(_run())

    assert fake_router.max_overlap == 2


def test_duplicate_event_id_is_skipped(monkeypatch) -> None:
    seen: set[str] = set()

    async def _fake_is_duplicate_event(event_id: str) -> bool:
        if event_id in seen:
            return True
        seen.add(event_id)
        return False

    monkeypatch.setattr(slack_events, "is_duplicate_event", _fake_is_duplicate_event)
    fake_router = _SlowRouter(delay=0)
    payload = message_payload("C123", "U1", "hi", "1.1", event_id="EvSame")

    async def _run() -> None:
        await slack_events._process_event_callback_impl(payload, fake_router)
        await slack_events._process_event_callback_impl(payload, fake_router)

    asyncio.run(_run())

    assert fake_router.handled == ["EvSame"]


def test_slow_event_is_abandoned_after_timeout(monkeypatch) -> None:
    monkeypatch.setattr(slack_events, "is_duplicate_event", _never_duplicate)
    monkeypatch.setattr(slack_events.settings, "SLACK_EVENT_TIMEOUT_SECONDS", 0.01)
    fake_router = _SlowRouter(delay=0.2)

    result = asyncio.run(
        slack_events._process_event_callback_impl(message_payload("C1", "U1", "hi", "1.1"), fake_router)
    )

    assert result is None
    assert fake_router.handled == []
