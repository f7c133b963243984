"""
Routing Infrastructure Layer
============================

Slack Web API client.
"""

from support_portal.routing.infrastructure.external import (
    CircuitBreaker,
    SlackClient,
    SlackMessage,
)

__all__ = ["CircuitBreaker", "SlackClient", "SlackMessage"]
