"""
Test configuration and fixtures.

Provides:
- Staff users across roles and departments
- In-memory repositories implementing the application interfaces
- A TicketService wired to the fakes and a recording Slack notifier
"""

import os
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import pytest

os.environ.setdefault("ENVIRONMENT", "test")

from support_portal.access.domain.entities import User
from support_portal.config import GmvTier, IssueType, Role
from support_portal.routing.domain.value_objects import ChannelDirectory, NotificationRouter
from support_portal.routing.services import SlackThread
from support_portal.sla.domain.value_objects import SLAConfiguration
from support_portal.tickets.application import (
    ICatalogRepository,
    ICommentRepository,
    INotificationRepository,
    IPolicyProvider,
    ITicketRepository,
    IUserRepository,
    TicketService,
)
from support_portal.tickets.domain.entities import Category, Comment, Tag, Ticket, Vendor
from support_portal.tickets.domain.value_objects import PolicyConfig

CREATED_AT = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def make_user(user_id: str, role, department: Optional[str] = None, **kwargs) -> User:
    return User(
        id=user_id,
        email=kwargs.pop("email", f"{user_id}@portal.test"),
        name=kwargs.pop("name", user_id.replace("-", " ").title()),
        role=role,
        department=department,
        **kwargs,
    )


# =============================================================================
# In-memory repositories
# =============================================================================

class InMemoryTicketRepository(ITicketRepository):
    def __init__(self):
        self.tickets: Dict[str, Ticket] = {}
        self.sla_updates: List[tuple] = []

    async def get_by_id(self, ticket_id):
        stored = self.tickets.get(ticket_id)
        # Detached copy, like an entity mapped from a fresh row
        return replace(stored) if stored is not None else None

    async def list(self, filters=None, limit=100, offset=0):
        filters = filters or {}
        tickets = sorted(self.tickets.values(), key=lambda t: t.created_at, reverse=True)
        for key in ("department", "vendor_handle", "assignee_id"):
            if filters.get(key):
                tickets = [t for t in tickets if getattr(t, key) == filters[key]]
        if filters.get("status"):
            tickets = [t for t in tickets if t.status.value in filters["status"]]
        return [replace(t) for t in tickets[offset:offset + limit]]

    async def list_open(self):
        return [t for t in self.tickets.values() if t.is_open]

    async def list_without_snapshot(self):
        return [t for t in self.tickets.values() if t.snapshot_captured_at is None]

    async def next_sequence(self, prefix):
        return sum(1 for t in self.tickets.values() if t.ticket_number.startswith(prefix)) + 1

    async def count_vendor_tickets(self, vendor_handle, since):
        return sum(
            1 for t in self.tickets.values()
            if t.vendor_handle == vendor_handle and t.created_at >= since
        )

    async def count_vendor_category_tickets(self, vendor_handle, category_id, since):
        return sum(
            1 for t in self.tickets.values()
            if t.vendor_handle == vendor_handle and t.category_id == category_id and t.created_at >= since
        )

    async def create(self, ticket):
        stored = Ticket(**{**ticket.__dict__})
        for name in ("category_snapshot", "sla_snapshot", "priority_snapshot", "tags_snapshot",
                     "snapshot_captured_at"):
            setattr(stored, name, None)
        stored.snapshot_version = 0
        self.tickets[ticket.id] = stored
        return ticket

    async def update(self, ticket):
        stored = self.tickets[ticket.id]
        snapshot = {
            name: getattr(stored, name)
            for name in ("category_snapshot", "sla_snapshot", "priority_snapshot", "tags_snapshot",
                         "snapshot_version", "snapshot_captured_at")
        }
        self.tickets[ticket.id] = Ticket(**{**ticket.__dict__, **snapshot})
        return ticket

    async def capture_snapshot(self, ticket_id, bundle):
        stored = self.tickets.get(ticket_id)
        if stored is None or stored.snapshot_captured_at is not None:
            return False
        for name, value in bundle.to_columns().items():
            setattr(stored, name, value)
        return True

    async def replace_snapshot(self, ticket_id, bundle, expected_version):
        stored = self.tickets.get(ticket_id)
        if stored is None or stored.snapshot_version != expected_version:
            return False
        for name, value in bundle.to_columns().items():
            setattr(stored, name, value)
        return True

    async def update_sla_status(self, ticket_id, sla_status):
        self.sla_updates.append((ticket_id, sla_status))
        self.tickets[ticket_id].sla_status = sla_status


class InMemoryUserRepository(IUserRepository):
    def __init__(self, users: Sequence[User]):
        self.users = {user.id: user for user in users}

    async def get_by_id(self, user_id):
        return self.users.get(user_id)

    async def get_by_email(self, email):
        for user in self.users.values():
            if user.email == email.lower():
                return user
        return None

    async def list_active(self):
        return [user for user in self.users.values() if user.is_active]

    async def list_all(self):
        return list(self.users.values())

    async def update_manager(self, user_id, manager_id):
        self.users[user_id].manager_id = manager_id


class InMemoryCatalogRepository(ICatalogRepository):
    def __init__(self):
        self.vendors: Dict[str, Vendor] = {}
        self.categories: Dict[str, Category] = {}
        self.tags: Dict[str, Tag] = {}
        self.sla_configurations: List[SLAConfiguration] = []

    async def get_vendor(self, handle):
        return self.vendors.get(handle)

    async def get_category(self, category_id):
        return self.categories.get(category_id)

    async def list_tags(self, names):
        return [self.tags[name] for name in names if name in self.tags]

    async def list_sla_configurations(self, category_id):
        return [c for c in self.sla_configurations if c.category_id == category_id]


class InMemoryCommentRepository(ICommentRepository):
    def __init__(self):
        self.comments: List[Comment] = []

    async def create(self, comment):
        self.comments.append(comment)
        return comment

    async def list_for_ticket(self, ticket_id):
        return [c for c in self.comments if c.ticket_id == ticket_id]


class InMemoryNotificationRepository(INotificationRepository):
    def __init__(self):
        self.notifications = []

    async def create_many(self, notifications):
        self.notifications.extend(notifications)


class StaticPolicyProvider(IPolicyProvider):
    def __init__(self, config: Optional[PolicyConfig] = None):
        self.config = config or PolicyConfig()

    def get_config(self):
        return self.config


class RecordingNotifier:
    """Stands in for SlackNotifier and records every event."""

    def __init__(self, thread_ts: Optional[str] = "1700000000.000100", log: Optional[list] = None):
        self.events: List[tuple] = []
        self._thread_ts = thread_ts
        # Shared with the commit hook to check ordering
        self.log = log if log is not None else []

    def channels_for_ticket(self, ticket, **overrides):
        channels = [ticket.department]
        if ticket.is_escalated:
            channels.append("ESCALATION")
        return channels

    async def ticket_created(self, ticket, creator=None, assignee=None, manager=None):
        self.log.append("slack")
        self.events.append(("created", ticket.id, assignee.id if assignee else None, manager.id if manager else None))
        if self._thread_ts is None:
            return None
        return SlackThread(channel=ticket.department, ts=self._thread_ts)

    async def ticket_rerouted(self, ticket, previous_channels, actor=None):
        added = [c for c in self.channels_for_ticket(ticket) if c not in previous_channels]
        if added:
            self.log.append("slack")
            self.events.append(("rerouted", ticket.id, added))
        return len(added)

    async def ticket_assigned(self, ticket, assignee, assigner=None):
        self.events.append(("assigned", ticket.id, assignee.id if assignee else None))
        return True

    async def ticket_solved(self, ticket, solver=None):
        self.events.append(("solved", ticket.id))
        return True

    async def comment_mentioned(self, ticket, comment, commenter, mentioned):
        self.events.append(("mentioned", ticket.id, sorted(user.id for user in mentioned)))
        return True

    async def sla_breached(self, ticket):
        self.log.append("slack")
        self.events.append(("breached", ticket.id))
        return 1


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture()
def users() -> List[User]:
    return [
        make_user("owner-1", Role.OWNER, "Tech"),
        make_user("admin-1", Role.ADMIN, "Tech"),
        make_user("cx-agent", Role.AGENT, "CX", name="Casey Agent", slack_user_id="U0CX"),
        make_user("ops-manager", Role.MANAGER, "Operations", name="Olive Ops", slack_user_id="U0OPSM"),
        make_user("ops-agent", Role.AGENT, "Operations", name="Oscar Field", manager_id="ops-manager"),
        make_user("fin-agent", Role.AGENT, "Finance", name="Fiona Ledger"),
        make_user("inactive", Role.AGENT, "Operations", is_active=False),
    ]


@pytest.fixture()
def user_by_id(users) -> Dict[str, User]:
    return {user.id: user for user in users}


@pytest.fixture()
def category() -> Category:
    return Category(
        id="cat-payout",
        issue_type=IssueType.COMPLAINT,
        l1="Finance",
        l2="Payment",
        l3="Payout Delayed",
        department_type="Finance",
        issue_priority_points=30,
    )


@pytest.fixture()
def catalog(category) -> InMemoryCatalogRepository:
    repo = InMemoryCatalogRepository()
    repo.categories[category.id] = category
    repo.vendors["acme"] = Vendor(handle="acme", name="Acme Store", gmv_tier=GmvTier.GOLD)
    repo.vendors["tiny"] = Vendor(handle="tiny", name="Tiny Shop", gmv_90_day=1_500)
    repo.tags["vip"] = Tag(id="tag-vip", name="vip", color="#ff0000")
    repo.sla_configurations.append(SLAConfiguration(
        id="sla-all",
        category_id=category.id,
        department="All",
        response_hours=4,
        resolution_hours=48,
    ))
    return repo


@pytest.fixture()
def ticket_repository() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture()
def comment_repository() -> InMemoryCommentRepository:
    return InMemoryCommentRepository()


@pytest.fixture()
def notification_repository() -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def service(users, catalog, ticket_repository, comment_repository, notification_repository, notifier) -> TicketService:
    return TicketService(
        ticket_repository=ticket_repository,
        user_repository=InMemoryUserRepository(users),
        catalog_repository=catalog,
        comment_repository=comment_repository,
        notification_repository=notification_repository,
        policy_provider=StaticPolicyProvider(),
        notifier=notifier,
    )


@pytest.fixture()
def channel_directory() -> ChannelDirectory:
    return ChannelDirectory(channels={
        "OPERATIONS": "C_OPS",
        "FINANCE": "C_FIN",
        "CX": "C_CX",
        "CX_Returns": "C_CX_RETURNS",
        "URGENT": "C_URGENT",
        "ESCALATION": "C_ESC",
        "SLA_BREACH": "C_BREACH",
        "ID": "C_DEFAULT",
    })


@pytest.fixture()
def notification_router(channel_directory) -> NotificationRouter:
    return NotificationRouter(channel_directory)
