import json
from datetime import timedelta

import httpx
import pytest

from support_portal.config import NotificationType, SLAState, TicketStatus
from support_portal.core import (
    AccessDeniedException,
    DomainException,
    OrgHierarchyCycleException,
    ResourceNotFoundException,
)
from support_portal.routing.infrastructure.external import SlackClient
from support_portal.routing.services import SlackNotifier
from support_portal.tickets.application import TicketCreateRequest, TicketService, TicketUpdateRequest
from tests.conftest import (
    CREATED_AT,
    InMemoryNotificationRepository,
    InMemoryUserRepository,
    RecordingNotifier,
    StaticPolicyProvider,
)


def _create_request(**kwargs):
    values = dict(
        subject="Payout missing for January",
        department="Operations",
        vendor_handle="acme",
        category_id="cat-payout",
        tags=["vip", "new"],
        assignee_id="ops-agent",
        created_at=CREATED_AT,
    )
    values.update(kwargs)
    return TicketCreateRequest(**values)


@pytest.mark.asyncio
async def test_authenticate(service):
    user = await service.authenticate("  CX-AGENT@portal.test ")
    assert user.id == "cx-agent"

    with pytest.raises(AccessDeniedException):
        await service.authenticate("inactive@portal.test")
    with pytest.raises(AccessDeniedException):
        await service.authenticate("nobody@portal.test")
    with pytest.raises(AccessDeniedException):
        await service.authenticate(None)


@pytest.mark.asyncio
async def test_create_ticket_scores_targets_and_snapshots(service, user_by_id, ticket_repository):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])

    assert ticket.ticket_number == "SS00001"
    # Gold (25) + category points (30)
    assert ticket.priority_score == 55
    assert ticket.priority_tier == "High"
    assert ticket.priority_badge == "P1"
    assert ticket.sla_response_target == CREATED_AT + timedelta(hours=4)
    assert ticket.sla_resolve_target == CREATED_AT + timedelta(hours=48)
    assert ticket.sla_status == SLAState.ON_TRACK.value

    stored = ticket_repository.tickets[ticket.id]
    assert stored.snapshot_captured_at == CREATED_AT
    assert stored.snapshot_version == 1
    assert stored.category_snapshot["l3"] == "Payout Delayed"
    assert stored.sla_snapshot["configuration_id"] == "sla-all"
    assert [tag["name"] for tag in stored.tags_snapshot] == ["vip", "new"]
    assert stored.slack_thread_ts == "1700000000.000100"
    assert stored.slack_channel_id == "Operations"


@pytest.mark.asyncio
async def test_customer_ticket_numbering_and_fallback_sla(service, user_by_id):
    first = await service.create_ticket(
        _create_request(vendor_handle=None, category_id=None, issue_type="Request"), user_by_id["cx-agent"]
    )
    second = await service.create_ticket(
        _create_request(vendor_handle=None, category_id=None), user_by_id["cx-agent"]
    )

    assert (first.ticket_number, second.ticket_number) == ("CS00001", "CS00002")
    assert first.priority_score == 20
    assert first.sla_response_target is None
    assert first.sla_resolve_target == CREATED_AT + timedelta(hours=24)


@pytest.mark.asyncio
async def test_vendor_history_raises_priority(service, user_by_id):
    for _ in range(3):
        await service.create_ticket(_create_request(), user_by_id["cx-agent"])
    fourth = await service.create_ticket(_create_request(), user_by_id["cx-agent"])

    assert fourth.priority_breakdown["vendor_ticket_volume"] == 3
    assert fourth.priority_breakdown["volume_points"] == 5
    assert fourth.priority_breakdown["ticket_history_points"] == 15
    assert fourth.priority_tier == "Critical"


@pytest.mark.asyncio
async def test_gmv_tier_derived_from_gmv(service, user_by_id):
    ticket = await service.create_ticket(_create_request(vendor_handle="tiny"), user_by_id["cx-agent"])
    assert ticket.priority_breakdown["vendor_gmv_tier"] == "Bronze"


@pytest.mark.asyncio
async def test_create_notifications(service, user_by_id, notification_repository, notifier):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])

    by_type = {}
    for notification in notification_repository.notifications:
        by_type.setdefault(notification.type, set()).add(notification.user_id)
    assert by_type[NotificationType.CASE_CREATED] == {"ops-manager", "ops-agent"}
    assert by_type[NotificationType.TICKET_ASSIGNED] == {"ops-agent"}
    assert notifier.events == [("created", ticket.id, "ops-agent", "ops-manager")]


@pytest.mark.asyncio
async def test_create_requires_permission(service, user_by_id):
    user = user_by_id["ops-agent"]
    user.custom_permissions = ["view:tickets"]
    with pytest.raises(AccessDeniedException):
        await service.create_ticket(_create_request(), user)


@pytest.mark.asyncio
async def test_visibility_follows_department(service, user_by_id):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])

    assert (await service.get_ticket(ticket.id, user_by_id["ops-agent"])).id == ticket.id
    with pytest.raises(AccessDeniedException):
        await service.get_ticket(ticket.id, user_by_id["fin-agent"])
    with pytest.raises(ResourceNotFoundException):
        await service.get_ticket("missing", user_by_id["owner-1"])

    assert await service.list_tickets(user_by_id["fin-agent"]) == []
    assert len(await service.list_tickets(user_by_id["admin-1"])) == 1


@pytest.mark.asyncio
async def test_limited_update_by_department_member(service, user_by_id, notifier, ticket_repository):
    ticket = await service.create_ticket(_create_request(assignee_id=None), user_by_id["cx-agent"])

    updated = await service.update_ticket(
        ticket.id,
        TicketUpdateRequest(assignee_id="ops-agent", status=TicketStatus.SOLVED),
        user_by_id["ops-manager"],
    )

    assert updated.status == TicketStatus.SOLVED
    assert updated.resolved_at is not None
    assert ("assigned", ticket.id, "ops-agent") in notifier.events
    assert ("solved", ticket.id) in notifier.events
    # Snapshot untouched by the edit
    assert ticket_repository.tickets[ticket.id].snapshot_version == 1


@pytest.mark.asyncio
async def test_restricted_update_denied_outside_cx(service, user_by_id):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])
    with pytest.raises(AccessDeniedException):
        await service.update_ticket(ticket.id, TicketUpdateRequest(subject="New"), user_by_id["ops-agent"])


@pytest.mark.asyncio
async def test_cx_update_rescores_and_recomputes_targets(service, user_by_id, ticket_repository):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])
    snapshot_before = dict(ticket_repository.tickets[ticket.id].priority_snapshot)

    updated = await service.update_ticket(
        ticket.id,
        TicketUpdateRequest(category_id=None, vendor_handle=None, issue_type="Information"),
        user_by_id["cx-agent"],
    )

    assert updated.priority_score == 10
    assert updated.sla_resolve_target == CREATED_AT + timedelta(hours=24)
    assert ticket_repository.tickets[ticket.id].priority_snapshot == snapshot_before


def test_update_request_rejects_null_required_fields():
    with pytest.raises(ValueError):
        TicketUpdateRequest(subject=None)
    assert TicketUpdateRequest(assignee_id=None).changes() == {"assignee_id": None}


@pytest.mark.asyncio
async def test_comment_records_first_response_and_mentions(
    service, user_by_id, comment_repository, notification_repository, notifier
):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])
    notification_repository.notifications.clear()

    comment = await service.add_comment(ticket.id, "On it, @olive fyi", user_by_id["ops-agent"])

    assert comment_repository.comments == [comment]
    stored = await service.get_ticket(ticket.id, user_by_id["owner-1"])
    assert stored.first_response_at == comment.created_at
    types = {(n.type, n.user_id) for n in notification_repository.notifications}
    assert types == {
        (NotificationType.COMMENT_ADDED, "cx-agent"),
        (NotificationType.COMMENT_MENTION, "ops-manager"),
    }
    assert ("mentioned", ticket.id, ["ops-manager"]) in notifier.events


@pytest.mark.asyncio
async def test_creator_comment_is_not_a_first_response(service, user_by_id):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])
    await service.add_comment(ticket.id, "More details attached", user_by_id["cx-agent"])
    assert (await service.get_ticket(ticket.id, user_by_id["owner-1"])).first_response_at is None


@pytest.mark.asyncio
async def test_resnapshot_bumps_version(service, user_by_id, catalog, ticket_repository):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])
    del catalog.categories["cat-payout"]

    with pytest.raises(AccessDeniedException):
        await service.resnapshot_ticket(ticket.id, user_by_id["cx-agent"])

    resnapshotted = await service.resnapshot_ticket(ticket.id, user_by_id["admin-1"])
    assert resnapshotted.snapshot_version == 2
    assert ticket_repository.tickets[ticket.id].category_snapshot["l1"] == "Unknown"


@pytest.mark.asyncio
async def test_resnapshot_conflict(service, user_by_id, ticket_repository, monkeypatch):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])

    async def concurrent_change(ticket_id, bundle, expected_version):
        return False

    monkeypatch.setattr(ticket_repository, "replace_snapshot", concurrent_change)

    with pytest.raises(DomainException):
        await service.resnapshot_ticket(ticket.id, user_by_id["admin-1"])


@pytest.mark.asyncio
async def test_backfill_snapshots(service, user_by_id, ticket_repository):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])
    stored = ticket_repository.tickets[ticket.id]
    stored.snapshot_captured_at = None
    stored.category_snapshot = None
    stored.snapshot_version = 0

    result = await service.backfill_snapshots(user_by_id["owner-1"])

    assert result == {"total": 1, "migrated": 1, "skipped": 0, "failed": 0, "errors": []}
    assert stored.snapshot_captured_at == CREATED_AT
    assert stored.category_snapshot["l1"] == "Finance"

    again = await service.backfill_snapshots()
    assert again["total"] == 0


@pytest.mark.asyncio
async def test_access_summary(service, user_by_id):
    summary = service.access_summary(user_by_id["ops-agent"])
    assert summary["role"] == "Agent"
    assert "view:department_tickets" in summary["permissions"]
    assert summary["departments"] == ["Operations"]


def _service_with(users, catalog, ticket_repository, comment_repository, notifier, commit=None):
    return TicketService(
        ticket_repository=ticket_repository,
        user_repository=InMemoryUserRepository(users),
        catalog_repository=catalog,
        comment_repository=comment_repository,
        notification_repository=InMemoryNotificationRepository(),
        policy_provider=StaticPolicyProvider(),
        notifier=notifier,
        commit=commit,
    )


@pytest.mark.asyncio
async def test_naive_created_at_is_read_as_utc(service, user_by_id):
    naive = await service.create_ticket(
        _create_request(created_at=CREATED_AT.replace(tzinfo=None)), user_by_id["cx-agent"]
    )
    aware = await service.create_ticket(_create_request(), user_by_id["cx-agent"])

    assert naive.created_at == aware.created_at == CREATED_AT
    assert naive.sla_resolve_target == aware.sla_resolve_target


@pytest.mark.asyncio
async def test_commit_happens_before_slack(users, catalog, ticket_repository, comment_repository, user_by_id):
    order = []

    async def commit():
        order.append("commit")

    notifier = RecordingNotifier(log=order)
    service = _service_with(users, catalog, ticket_repository, comment_repository, notifier, commit)

    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])
    assert order == ["commit", "slack"]

    order.clear()
    await service.update_ticket(ticket.id, TicketUpdateRequest(is_escalated=True), user_by_id["cx-agent"])
    assert order == ["commit", "slack"]


@pytest.mark.asyncio
async def test_escalation_announced_in_newly_routed_channel(service, user_by_id, notifier):
    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])

    await service.update_ticket(ticket.id, TicketUpdateRequest(status=TicketStatus.OPEN), user_by_id["ops-agent"])
    assert not [e for e in notifier.events if e[0] == "rerouted"]

    await service.update_ticket(ticket.id, TicketUpdateRequest(is_escalated=True), user_by_id["cx-agent"])
    assert ("rerouted", ticket.id, ["ESCALATION"]) in notifier.events


@pytest.mark.asyncio
async def test_escalation_posts_to_escalation_channel_only(
    users, catalog, ticket_repository, comment_repository, user_by_id, notification_router
):
    payloads = []

    def handler(request):
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "ts": f"ts-{len(payloads)}"})

    slack = SlackClient(
        bot_token="xoxb-test",
        api_url="https://slack.test/api",
        app_url="https://portal.test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    service = _service_with(
        users, catalog, ticket_repository, comment_repository, SlackNotifier(notification_router, slack)
    )

    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])
    assert [p["channel"] for p in payloads] == ["C_OPS"]
    assert ticket_repository.tickets[ticket.id].slack_channel_id == "C_OPS"

    payloads.clear()
    await service.update_ticket(ticket.id, TicketUpdateRequest(is_escalated=True), user_by_id["cx-agent"])

    assert [p["channel"] for p in payloads] == ["C_ESC"]
    assert "thread_ts" not in payloads[0]
    await slack.close()


@pytest.mark.asyncio
async def test_assign_manager(service, user_by_id):
    chain = await service.assign_manager("ops-agent", "fin-agent", user_by_id["admin-1"])

    assert [user.id for user in chain] == ["fin-agent"]
    assert user_by_id["ops-agent"].manager_id == "fin-agent"


@pytest.mark.asyncio
async def test_assign_manager_rejections(service, user_by_id):
    with pytest.raises(OrgHierarchyCycleException):
        await service.assign_manager("ops-manager", "ops-agent", user_by_id["admin-1"])
    with pytest.raises(ResourceNotFoundException):
        await service.assign_manager("ops-agent", "nobody", user_by_id["admin-1"])
    with pytest.raises(AccessDeniedException):
        await service.assign_manager("ops-agent", None, user_by_id["ops-manager"])

    assert user_by_id["ops-manager"].manager_id is None
    assert user_by_id["ops-agent"].manager_id == "ops-manager"


@pytest.mark.asyncio
async def test_creation_tags_manager_from_org_chart(service, user_by_id, notifier):
    user_by_id["ops-agent"].manager_id = "fin-agent"

    ticket = await service.create_ticket(_create_request(), user_by_id["cx-agent"])

    assert ("created", ticket.id, "ops-agent", "fin-agent") in notifier.events
