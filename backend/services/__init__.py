"""Services package."""
from services.slack_event_router import RouteAction, RouteResult, SlackEventRouter

__all__ = ["RouteAction", "RouteResult", "SlackEventRouter"]
