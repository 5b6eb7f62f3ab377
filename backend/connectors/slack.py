"""
Slack Web API client.

Responsibilities:
- Authenticate each call with the bot token of the governing authorization
- Wrap users.info, conversations.info, conversations.history and
  chat.postMessage
- Turn every failure (transport error, timeout, non-2xx, ``ok: false``) into
  an ``ok=False`` :class:`SlackApiResult` instead of raising
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlackApiResult:
    """Success/failure envelope returned by every client call."""

    ok: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, data: Optional[dict[str, Any]] = None) -> "SlackApiResult":
        return cls(ok=False, data=data or {}, error=error)


class SlackClient(Protocol):
    """Capability interface the router depends on; swapped for a fake in tests."""

    async def retrieve_user_info(self, access_token: str, user_id: str) -> SlackApiResult: ...

    async def retrieve_channel_info(self, access_token: str, channel_id: str) -> SlackApiResult: ...

    async def retrieve_message(
        self, access_token: str, channel_id: str, thread_ts: str
    ) -> SlackApiResult: ...

    async def send_message(self, access_token: str, payload: dict[str, Any]) -> SlackApiResult: ...


class HttpSlackClient:
    """:class:`SlackClient` backed by httpx against the real Slack Web API."""

    def __init__(
        self,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_base = (api_base or settings.SLACK_API_BASE).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.SLACK_API_TIMEOUT_SECONDS
        self._transport = transport

    @staticmethod
    def _get_headers(access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json; charset=utf-8",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        access_token: str,
        params: Optional[dict[str, Any]] = None,
        json_data: Optional[dict[str, Any]] = None,
    ) -> SlackApiResult:
        """Make an authenticated request to Slack API."""
        url = f"{self.api_base}/{endpoint}"
        headers = self._get_headers(access_token)

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                if method == "GET":
                    response = await client.get(url, headers=headers, params=params)
                else:
                    response = await client.post(url, headers=headers, json=json_data)
                response.raise_for_status()
                data: dict[str, Any] = response.json()
        except httpx.TimeoutException:
            logger.warning("[slack_client] %s timed out after %ss", endpoint, self.timeout)
            return SlackApiResult.failure("timeout")
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "[slack_client] %s returned HTTP %s",
                endpoint,
                exc.response.status_code,
            )
            return SlackApiResult.failure(f"http_{exc.response.status_code}")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("[slack_client] %s request failed: %s", endpoint, exc)
            return SlackApiResult.failure("request_failed")

        if not data.get("ok"):
            error = str(data.get("error") or "unknown")
            logger.warning("[slack_client] %s responded ok=false error=%s", endpoint, error)
            return SlackApiResult.failure(error, data)

        return SlackApiResult(ok=True, data=data)

    async def retrieve_user_info(self, access_token: str, user_id: str) -> SlackApiResult:
        """users.info -> ``{"user": {"profile": {"email"}, "real_name", "tz"}}``."""
        return await self._make_request(
            "GET", "users.info", access_token, params={"user": user_id}
        )

    async def retrieve_channel_info(self, access_token: str, channel_id: str) -> SlackApiResult:
        """conversations.info -> ``{"channel": {"name", "purpose", "topic"}}``."""
        return await self._make_request(
            "GET", "conversations.info", access_token, params={"channel": channel_id}
        )

    async def retrieve_message(
        self, access_token: str, channel_id: str, thread_ts: str
    ) -> SlackApiResult:
        """Fetch the single message at ``thread_ts`` (the thread's parent)."""
        return await self._make_request(
            "GET",
            "conversations.history",
            access_token,
            params={
                "channel": channel_id,
                "latest": thread_ts,
                "inclusive": "true",
                "limit": 1,
            },
        )

    async def send_message(self, access_token: str, payload: dict[str, Any]) -> SlackApiResult:
        """chat.postMessage with a prepared payload (channel, text, thread_ts, ...)."""
        return await self._make_request(
            "POST", "chat.postMessage", access_token, json_data=payload
        )


def extract_slack_email(slack_user: Optional[dict[str, Any]]) -> Optional[str]:
    if not slack_user:
        return None
    profile = slack_user.get("profile") or {}
    slack_email = (profile.get("email") or "").strip().lower()
    return slack_email or None


def extract_slack_display_name(slack_user: Optional[dict[str, Any]]) -> Optional[str]:
    if not slack_user:
        return None
    profile = slack_user.get("profile") or {}
    display_name = (
        slack_user.get("real_name")
        or profile.get("real_name")
        or profile.get("display_name")
        or slack_user.get("name")
        or ""
    ).strip()
    return display_name or None


def extract_slack_timezone(slack_user: Optional[dict[str, Any]]) -> Optional[str]:
    """IANA timezone (e.g. ``America/New_York``) from a users.info payload."""
    if not slack_user:
        return None
    tz: str = (slack_user.get("tz") or "").strip()
    return tz or None
