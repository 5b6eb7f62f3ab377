"""Outbound API clients package."""
from connectors.slack import HttpSlackClient, SlackApiResult, SlackClient

__all__ = [
    "HttpSlackClient",
    "SlackApiResult",
    "SlackClient",
]
