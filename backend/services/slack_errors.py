"""
Exceptions raised while resolving inbound Slack events.

Every subclass of :class:`SlackEventError` means "drop this one event": the
router logs it together with the raw event and the webhook still answers 200.
"""
from __future__ import annotations

from typing import Any, Optional


class SlackEventError(RuntimeError):
    """Base class for per-event failures that discard the event."""

    reason: str = "slack_event_error"


class SlackApiError(SlackEventError):
    """A Slack Web API call failed (transport error, timeout, non-2xx or ok=false)."""

    reason = "external_api_failure"

    def __init__(self, method: str, error: Optional[str]) -> None:
        super().__init__(f"Slack API {method} failed: {error or 'unknown'}")
        self.method = method
        self.error = error


class IdentityResolutionError(SlackEventError):
    """The Slack author could not be mapped to an agent or customer."""

    reason = "identity_resolution_failure"

    def __init__(self, slack_user_id: str, detail: str) -> None:
        super().__init__(f"Could not resolve Slack user {slack_user_id}: {detail}")
        self.slack_user_id = slack_user_id
        self.detail = detail


class DuplicateThreadError(SlackEventError):
    """Another writer already linked a conversation to this Slack thread.

    Recovered locally by the router, which appends to ``existing`` instead.
    """

    reason = "duplicate_thread_race"

    def __init__(self, existing: Any) -> None:
        super().__init__(
            f"Slack thread {getattr(existing, 'slack_channel', '?')}:"
            f"{getattr(existing, 'slack_thread_ts', '?')} already linked"
        )
        self.existing = existing
