"""
Routing Domain Layer
====================

Channel directory, router and in-app notification planner.
"""

from support_portal.routing.domain.notifications import (
    EVENT_NOTIFICATION_TYPES,
    Notification,
    NotificationPlanner,
    extract_mentions,
)
from support_portal.routing.domain.value_objects import (
    ChannelDirectory,
    NotificationContext,
    NotificationRouter,
)

__all__ = [
    "EVENT_NOTIFICATION_TYPES",
    "ChannelDirectory",
    "Notification",
    "NotificationContext",
    "NotificationPlanner",
    "NotificationRouter",
    "extract_mentions",
]
