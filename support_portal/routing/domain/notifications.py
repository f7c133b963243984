"""
In-app Notifications
====================

Maps ticket events to the users who should see them in their feed.

The planner only decides; persisting notifications is the caller's job.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from support_portal.access.domain.entities import User
from support_portal.config import NotificationType

MENTION_PATTERN = re.compile(r"@(\w+(?:\.\w+)*@?\w*\.?\w+)")

# Ticket event -> in-app notification type
EVENT_NOTIFICATION_TYPES: Dict[str, NotificationType] = {
    "ticket_created": NotificationType.CASE_CREATED,
    "ticket_assigned": NotificationType.TICKET_ASSIGNED,
    "ticket_solved": NotificationType.TICKET_SOLVED,
    "comment_added": NotificationType.COMMENT_ADDED,
    "comment_mentioned": NotificationType.COMMENT_MENTION,
}


@dataclass
class Notification:
    """In-app notification for one recipient."""
    user_id: str
    type: NotificationType
    title: str
    message: str
    ticket_id: Optional[str] = None
    comment_id: Optional[str] = None
    actor_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_read: bool = False
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def extract_mentions(body: Optional[str]) -> List[str]:
    """Mention tokens in a comment body, without the leading ``@``."""
    if not body:
        return []
    return MENTION_PATTERN.findall(body)


def _ticket_metadata(ticket: Any, **extra) -> Dict[str, Any]:
    metadata = {
        "ticket_number": getattr(ticket, "ticket_number", None),
        "vendor_handle": getattr(ticket, "vendor_handle", None),
    }
    metadata.update({key: value for key, value in extra.items() if value is not None})
    return metadata


def _tier(ticket: Any) -> Optional[str]:
    tier = getattr(ticket, "priority_tier", None)
    return getattr(tier, "value", tier)


class NotificationPlanner:
    """Decides in-app notification recipients per ticket event."""

    def ticket_created(self, ticket: Any, users: Iterable[User]) -> List[Notification]:
        """Active members of the owning team, except the creator."""
        team = getattr(ticket, "owner_team", None) or getattr(ticket, "department", None)
        creator_id = getattr(ticket, "created_by_id", None)
        return [
            Notification(
                user_id=user.id,
                type=NotificationType.CASE_CREATED,
                title="New Ticket Created",
                message=f"A new {_tier(ticket)} priority ticket has been created: {ticket.subject}",
                ticket_id=ticket.id,
                actor_id=creator_id,
                metadata=_ticket_metadata(ticket, priority=_tier(ticket)),
            )
            for user in users
            if user.is_active and team and user.department == team and user.id != creator_id
        ]

    def ticket_assigned(self, ticket: Any, actor: Optional[User]) -> List[Notification]:
        if not getattr(ticket, "assignee_id", None):
            return []
        return [
            Notification(
                user_id=ticket.assignee_id,
                type=NotificationType.TICKET_ASSIGNED,
                title="Ticket Assigned to You",
                message=f"You have been assigned ticket: {ticket.subject}",
                ticket_id=ticket.id,
                actor_id=actor.id if actor else None,
                metadata=_ticket_metadata(
                    ticket,
                    priority=_tier(ticket),
                    assigned_by=actor.name if actor else None,
                ),
            )
        ]

    def ticket_solved(self, ticket: Any, solver: Optional[User]) -> List[Notification]:
        """Creator unless they solved it; assignee unless creator or solver."""
        solver_id = solver.id if solver else None
        creator_id = getattr(ticket, "created_by_id", None)
        assignee_id = getattr(ticket, "assignee_id", None)
        metadata = _ticket_metadata(ticket, solved_by=solver.name if solver else None)

        notifications = []
        if creator_id and creator_id != solver_id:
            notifications.append(Notification(
                user_id=creator_id,
                type=NotificationType.TICKET_SOLVED,
                title="Ticket Solved",
                message=f"Your ticket has been solved: {ticket.subject}",
                ticket_id=ticket.id,
                actor_id=solver_id,
                metadata=dict(metadata),
            ))
        if assignee_id and assignee_id != creator_id and assignee_id != solver_id:
            notifications.append(Notification(
                user_id=assignee_id,
                type=NotificationType.TICKET_SOLVED,
                title="Assigned Ticket Solved",
                message=f"A ticket assigned to you has been solved: {ticket.subject}",
                ticket_id=ticket.id,
                actor_id=solver_id,
                metadata=dict(metadata),
            ))
        return notifications

    def comment_added(self, ticket: Any, comment: Any, commenter: Optional[User]) -> List[Notification]:
        """Creator and assignee, never the commenter."""
        commenter_id = commenter.id if commenter else None
        recipients: List[str] = []
        for user_id in (getattr(ticket, "created_by_id", None), getattr(ticket, "assignee_id", None)):
            if user_id and user_id != commenter_id and user_id not in recipients:
                recipients.append(user_id)

        author = commenter.name if commenter else "Someone"
        return [
            Notification(
                user_id=user_id,
                type=NotificationType.COMMENT_ADDED,
                title="New Comment on Ticket",
                message=f"{author} commented on ticket: {ticket.subject}",
                ticket_id=ticket.id,
                comment_id=comment.id,
                actor_id=commenter_id,
                metadata=_ticket_metadata(ticket, comment_author=commenter.name if commenter else None),
            )
            for user_id in recipients
        ]

    def mentioned_users(self, body: Optional[str], users: Iterable[User], commenter: Optional[User]) -> List[User]:
        mentions = extract_mentions(body)
        if not mentions:
            return []
        commenter_id = commenter.id if commenter else None
        return [
            user for user in users
            if user.id != commenter_id and any(user.matches_mention(token) for token in mentions)
        ]

    def comment_mentions(
        self,
        ticket: Any,
        comment: Any,
        commenter: Optional[User],
        users: Iterable[User],
    ) -> List[Notification]:
        author = commenter.name if commenter else "Someone"
        return [
            Notification(
                user_id=user.id,
                type=NotificationType.COMMENT_MENTION,
                title="You Were Mentioned",
                message=f"{author} mentioned you in ticket: {ticket.subject}",
                ticket_id=ticket.id,
                comment_id=comment.id,
                actor_id=commenter.id if commenter else None,
                metadata=_ticket_metadata(ticket, mentioned_by=commenter.name if commenter else None),
            )
            for user in self.mentioned_users(comment.body, users, commenter)
        ]
