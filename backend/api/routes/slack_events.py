"""
Slack Events API webhook endpoint.

Handles incoming events from Slack, including:
- URL verification challenge (when setting up the webhook)
- message events in support, company and primary notification channels
- channel_join / group_join notifications (company creation)

NOTE: The Slack app must subscribe to ``message.channels`` and
``message.groups`` under Event Subscriptions for replies in private company
channels to arrive.

Security:
- All requests are verified using HMAC-SHA256 signature
- Timestamps are validated to prevent replay attacks

Every verified request is answered with 200 so Slack does not retry; events
that cannot be processed are logged and dropped.
"""
from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

import redis.asyncio as redis
from fastapi import APIRouter, Depends, HTTPException, Request

from config import get_redis_connection_kwargs, settings
from connectors.slack import HttpSlackClient
from services.slack_authorizations import SqlAuthorizationRegistry
from services.slack_event_router import RouteResult, SlackEventRouter
from services.slack_payloads import SlackEventKind, parse_webhook_payload
from services.slack_records import SqlRecordStore
from services.slack_threads import SqlThreadIndex

logger = logging.getLogger(__name__)

router = APIRouter()

# Redis client for event deduplication
_redis_client: redis.Redis | None = None


class SlackThreadLockManager:
    """In-process async lock manager keyed by Slack thread identity."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_refs: dict[str, int] = {}
        self._manager_lock = asyncio.Lock()

    @staticmethod
    def build_lock_key(team_id: Optional[str], channel_id: Optional[str], thread_ts: Optional[str]) -> str:
        return f"{team_id or '-'}:{channel_id or '-'}:{thread_ts or '-'}"

    @asynccontextmanager
    async def thread_lock(self, lock_key: str):
        """Acquire/release the per-thread lock, cleaning up idle keys."""
        async with self._manager_lock:
            lock = self._locks.get(lock_key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[lock_key] = lock
                self._lock_refs[lock_key] = 0
            self._lock_refs[lock_key] = self._lock_refs.get(lock_key, 0) + 1
            queued_count = self._lock_refs[lock_key]

        logger.debug(
            "[slack_events] Waiting for thread lock key=%s queued=%d",
            lock_key,
            queued_count,
        )
        await lock.acquire()

        try:
            yield
        finally:
            lock.release()
            async with self._manager_lock:
                remaining = max(self._lock_refs.get(lock_key, 1) - 1, 0)
                if remaining == 0:
                    self._lock_refs.pop(lock_key, None)
                    self._locks.pop(lock_key, None)
                else:
                    self._lock_refs[lock_key] = remaining


_thread_lock_manager = SlackThreadLockManager()


async def get_redis() -> redis.Redis:
    """Get or create Redis client for event deduplication."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.REDIS_URL, **get_redis_connection_kwargs()
        )
    return _redis_client


def get_event_router() -> SlackEventRouter:
    """Event router wired to the database stores and the Slack Web API."""
    return SlackEventRouter(
        client=HttpSlackClient(),
        registry=SqlAuthorizationRegistry(),
        threads=SqlThreadIndex(),
        records=SqlRecordStore(),
    )


def verify_slack_signature(
    body: bytes,
    timestamp: str,
    signature: str,
) -> bool:
    """
    Verify that the request came from Slack using HMAC-SHA256.

    Args:
        body: Raw request body
        timestamp: X-Slack-Request-Timestamp header
        signature: X-Slack-Signature header

    Returns:
        True if signature is valid
    """
    if not settings.SLACK_SIGNING_SECRET:
        logger.warning("[slack_events] SLACK_SIGNING_SECRET not configured")
        return False

    # 5 minute replay window
    try:
        request_time = int(timestamp)
    except ValueError:
        logger.warning("[slack_events] Invalid timestamp: %s", timestamp)
        return False
    if abs(int(time.time()) - request_time) > 300:
        logger.warning("[slack_events] Request timestamp too old: %s", timestamp)
        return False

    sig_basestring = b"v0:" + timestamp.encode("utf-8") + b":" + body
    expected_signature = (
        "v0="
        + hmac.new(
            settings.SLACK_SIGNING_SECRET.encode("utf-8"),
            sig_basestring,
            hashlib.sha256,
        ).hexdigest()
    )
    return hmac.compare_digest(expected_signature, signature)


async def is_duplicate_event(event_id: str) -> bool:
    """
    Check if we've already processed this event (deduplication).

    Slack retries events it considers unacknowledged, so the same event_id can
    arrive more than once. The first delivery claims the id in Redis.

    Returns:
        True if event was already processed
    """
    try:
        redis_client = await get_redis()
        key = f"support_inbox:slack_events:{event_id}"
        was_set = await redis_client.set(
            key, "1", nx=True, ex=settings.SLACK_EVENT_DEDUP_TTL_SECONDS
        )
        return not was_set
    except Exception as e:
        logger.error("[slack_events] Redis error during deduplication: %s", e)
        # Redis down: process anyway
        return False


async def _process_event_callback(
    payload: dict[str, Any],
    event_router: SlackEventRouter,
) -> Optional[RouteResult]:
    """Dedup, serialize per thread, and route one event; never raises."""
    try:
        return await _process_event_callback_impl(payload, event_router)
    except Exception as e:
        logger.exception("[slack_events] Event processing failed: %s", e)
        return None


async def _process_event_callback_impl(
    payload: dict[str, Any],
    event_router: SlackEventRouter,
) -> Optional[RouteResult]:
    event = parse_webhook_payload(payload)
    if event.kind is SlackEventKind.UNKNOWN:
        logger.debug(
            "[slack_events] Ignoring unrecognized event type=%s subtype=%s",
            event.raw.get("type"),
            event.raw.get("subtype"),
        )
        return None

    if event.event_id and await is_duplicate_event(event.event_id):
        logger.info("[slack_events] Skipping duplicate event: %s", event.event_id)
        return None

    lock_key = SlackThreadLockManager.build_lock_key(
        event.effective_team_id or event.team_id, event.channel_id, event.thread_key
    )
    async with _thread_lock_manager.thread_lock(lock_key):
        try:
            return await asyncio.wait_for(
                event_router.handle_event(event),
                timeout=settings.SLACK_EVENT_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[slack_events] Event handling exceeded %ss event_id=%s channel=%s user=%s thread=%s",
                settings.SLACK_EVENT_TIMEOUT_SECONDS,
                event.event_id,
                event.channel_id,
                event.user_id,
                event.thread_key,
            )
            return None


@router.post("/events", response_model=None)
async def handle_slack_events(
    request: Request,
    event_router: SlackEventRouter = Depends(get_event_router),
) -> dict[str, Any]:
    """
    Handle incoming Slack Events API requests.

    This endpoint handles:
    1. URL verification challenge (returns challenge value)
    2. Event callbacks (routed inline, bounded by SLACK_EVENT_TIMEOUT_SECONDS)

    All requests are verified using HMAC-SHA256 signature.
    """
    body = await request.body()

    timestamp = request.headers.get("X-Slack-Request-Timestamp", "")
    signature = request.headers.get("X-Slack-Signature", "")

    if not verify_slack_signature(body, timestamp, signature):
        logger.warning("[slack_events] Invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("[slack_events] Failed to parse JSON: %s", e)
        return {"ok": True}
    if not isinstance(payload, dict):
        logger.warning("[slack_events] Ignoring non-object payload")
        return {"ok": True}

    event_type = payload.get("type")

    if event_type == "url_verification":
        logger.info("[slack_events] URL verification challenge received")
        return {"challenge": payload.get("challenge", "")}

    if event_type == "event_callback" or isinstance(payload.get("event"), dict):
        result = await _process_event_callback(payload, event_router)
        if result is not None:
            logger.info(
                "[slack_events] Processed event_id=%s action=%s reason=%s",
                payload.get("event_id"),
                result.action.value,
                result.reason,
            )

    return {"ok": True}


@router.get("/events/health")
async def slack_events_health() -> dict[str, Any]:
    """Health check for Slack events endpoint."""
    return {
        "status": "ok",
        "signing_secret_configured": bool(settings.SLACK_SIGNING_SECRET),
    }
