from types import SimpleNamespace

import pytest

from support_portal.config import NotificationType
from support_portal.routing.domain.notifications import (
    EVENT_NOTIFICATION_TYPES,
    NotificationPlanner,
    extract_mentions,
)


@pytest.fixture()
def planner():
    return NotificationPlanner()


@pytest.fixture()
def ticket():
    return SimpleNamespace(
        id="t-1",
        ticket_number="CS00001",
        subject="Order never arrived",
        department="Operations",
        owner_team=None,
        vendor_handle=None,
        priority_tier="High",
        created_by_id="cx-agent",
        assignee_id="ops-agent",
    )


def test_extract_mentions():
    assert extract_mentions("ping @oscar and @fiona.ledger please") == ["oscar", "fiona.ledger"]
    assert extract_mentions("no mentions here") == []
    assert extract_mentions(None) == []


def test_event_table_covers_the_in_app_types():
    assert EVENT_NOTIFICATION_TYPES["ticket_created"] == NotificationType.CASE_CREATED
    assert EVENT_NOTIFICATION_TYPES["comment_mentioned"] == NotificationType.COMMENT_MENTION


def test_ticket_created_notifies_active_department_members(planner, ticket, users):
    recipients = {n.user_id for n in planner.ticket_created(ticket, users)}
    assert recipients == {"ops-manager", "ops-agent"}


def test_ticket_created_uses_owner_team_when_set(planner, ticket, users):
    ticket.owner_team = "Finance"
    assert [n.user_id for n in planner.ticket_created(ticket, users)] == ["fin-agent"]


def test_ticket_assigned(planner, ticket, user_by_id):
    notifications = planner.ticket_assigned(ticket, user_by_id["cx-agent"])
    assert len(notifications) == 1
    assert notifications[0].user_id == "ops-agent"
    assert notifications[0].type == NotificationType.TICKET_ASSIGNED
    assert notifications[0].metadata["assigned_by"] == "Casey Agent"

    ticket.assignee_id = None
    assert planner.ticket_assigned(ticket, user_by_id["cx-agent"]) == []


def test_ticket_solved_skips_the_solver(planner, ticket, user_by_id):
    by_assignee = planner.ticket_solved(ticket, user_by_id["ops-agent"])
    assert [n.user_id for n in by_assignee] == ["cx-agent"]

    by_manager = planner.ticket_solved(ticket, user_by_id["ops-manager"])
    assert [n.user_id for n in by_manager] == ["cx-agent", "ops-agent"]


def test_comment_added_never_notifies_commenter(planner, ticket, user_by_id):
    comment = SimpleNamespace(id="c-1", body="Looking into it")
    notifications = planner.comment_added(ticket, comment, user_by_id["ops-agent"])
    assert [n.user_id for n in notifications] == ["cx-agent"]
    assert notifications[0].comment_id == "c-1"


def test_comment_mentions_match_user_names(planner, ticket, users, user_by_id):
    comment = SimpleNamespace(id="c-1", body="@fiona can you check? cc @olive")
    notifications = planner.comment_mentions(ticket, comment, user_by_id["ops-agent"], users)
    assert {n.user_id for n in notifications} == {"fin-agent", "ops-manager"}
    assert all(n.type == NotificationType.COMMENT_MENTION for n in notifications)


def test_self_mention_ignored(planner, users, user_by_id):
    assert planner.mentioned_users("@oscar note to self", users, user_by_id["ops-agent"]) == []
