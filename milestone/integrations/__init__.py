"""
Outbound message transports for Milestone notifications.

- Slack (Web API)
"""

from .base import MessageTransport, TransportConfig, TransportError
from .slack_client import SlackClient, SlackConfig, SlackError

__all__ = [
    "MessageTransport",
    "TransportConfig",
    "TransportError",
    "SlackClient",
    "SlackConfig",
    "SlackError",
]
