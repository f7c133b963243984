import json
from types import SimpleNamespace

import httpx
import pytest

from support_portal.config import TicketStatus
from support_portal.routing.domain.value_objects import (
    ChannelDirectory,
    NotificationContext,
    NotificationRouter,
)
from support_portal.routing.infrastructure.external import (
    SECTION_TEXT_LIMIT,
    CircuitBreaker,
    CircuitState,
    SlackClient,
)
from support_portal.routing.services import SlackNotifier


class TestChannelDirectory:
    def test_from_env_reads_slack_channel_variables(self):
        directory = ChannelDirectory.from_env({
            "SLACK_CHANNEL_OPERATIONS": "C1",
            "SLACK_CHANNEL_ID": "C0",
            "SLACK_CHANNEL_EMPTY": "",
            "OTHER": "ignored",
        })
        assert directory.channels == {"OPERATIONS": "C1", "ID": "C0"}
        assert directory.fallback == "C0"

    def test_lookup_normalises_names(self):
        directory = ChannelDirectory(channels={"Seller Support": "C_SS"})
        assert directory.get("seller support") == "C_SS"
        assert directory.get("SELLER_SUPPORT") == "C_SS"

    def test_cx_owner_team_channel(self, channel_directory):
        assert channel_directory.department_channel("CX", "Returns") == "C_CX_RETURNS"
        assert channel_directory.department_channel("CX", "Payments") == "C_CX"
        assert channel_directory.department_channel("Operations", "Returns") == "C_OPS"
        assert channel_directory.department_channel("Unknown") is None

    def test_channel_name(self, channel_directory):
        assert channel_directory.channel_name("C_BREACH") == "#sla-breach"
        assert channel_directory.channel_name("C_NOPE") == "C_NOPE"


class TestNotificationRouter:
    def test_all_rules_in_order_without_duplicates(self, notification_router):
        context = NotificationContext(
            department="Operations",
            priority_tier="urgent",
            status="Escalated",
            sla_status="breached",
        )
        assert notification_router.channels_for(context) == ["C_OPS", "C_URGENT", "C_ESC", "C_BREACH"]

    def test_fallback_only_when_nothing_matched(self, notification_router):
        assert notification_router.channels_for(NotificationContext(department="UnknownDept")) == ["C_DEFAULT"]

    def test_fallback_not_added_when_a_rule_matched(self, notification_router):
        context = NotificationContext(department="UnknownDept", priority_tier="Critical")
        assert notification_router.channels_for(context) == ["C_URGENT"]

    def test_same_channel_for_two_rules_appears_once(self):
        router = NotificationRouter(ChannelDirectory(channels={
            "OPERATIONS": "C_SHARED", "URGENT": "C_SHARED", "ESCALATION": "C_ESC",
        }))
        context = NotificationContext(department="Operations", priority_tier="critical", is_escalated=True)
        assert router.channels_for(context) == ["C_SHARED", "C_ESC"]

    def test_is_escalated_flag(self, notification_router):
        context = NotificationContext(department="Finance", is_escalated=True)
        assert notification_router.channels_for(context) == ["C_FIN", "C_ESC"]

    def test_repeatable(self, notification_router):
        context = NotificationContext(department="CX", owner_team="Returns", priority_tier="High")
        first = notification_router.channels_for(context)
        assert first == notification_router.channels_for(context) == ["C_CX_RETURNS"]

    def test_unconfigured_channels_are_skipped(self):
        router = NotificationRouter(ChannelDirectory())
        context = NotificationContext(department="Operations", priority_tier="urgent", sla_status="breached")
        assert router.channels_for(context) == []

    def test_context_from_ticket_unwraps_enums(self):
        ticket = SimpleNamespace(
            department="Operations",
            priority_tier="High",
            status=TicketStatus.OPEN,
            is_escalated=False,
            sla_status=None,
            owner_team=None,
        )
        context = NotificationContext.from_ticket(ticket, sla_status="breached")
        assert context.status == "Open"
        assert context.sla_status == "breached"


# =============================================================================
# Slack delivery
# =============================================================================

def _ticket(**kwargs):
    values = dict(
        id="t-1",
        ticket_number="SS00001",
        subject="Payout missing",
        department="Operations",
        owner_team=None,
        vendor_handle="acme",
        priority_tier="Critical",
        priority_score=75,
        status="Open",
        is_escalated=False,
        sla_status="on_track",
        sla_resolve_target=None,
        slack_thread_ts=None,
        slack_channel_id=None,
    )
    values.update(kwargs)
    return SimpleNamespace(**values)


def _slack_client(handler, **kwargs):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SlackClient(
        bot_token="xoxb-test",
        api_url="https://slack.test/api",
        app_url="https://portal.test",
        http_client=http_client,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_post_message_returns_ts_and_sends_bearer_token():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"ok": True, "ts": "111.222"})

    client = _slack_client(handler)
    message = client.build_ticket_created(_ticket(), "C_OPS")

    assert await client.post_message(message) == "111.222"
    assert requests[0].headers["Authorization"] == "Bearer xoxb-test"
    assert requests[0].url.path == "/api/chat.postMessage"
    payload = json.loads(requests[0].content)
    assert payload["channel"] == "C_OPS"
    assert "thread_ts" not in payload
    await client.close()


@pytest.mark.asyncio
async def test_post_message_failure_returns_none_and_trips_breaker():
    def handler(request):
        return httpx.Response(503, text="unavailable")

    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
    client = _slack_client(handler, circuit_breaker=breaker)

    assert await client.post_message(client.build_sla_breach(_ticket(), "C_X"), max_retries=1) is None
    assert breaker.state == CircuitState.OPEN
    assert not breaker.allow_request()
    await client.close()


@pytest.mark.asyncio
async def test_unconfigured_client_skips_delivery():
    client = SlackClient(bot_token="")
    assert not client.is_configured
    assert await client.post_message(client.build_sla_breach(_ticket(), "C_X")) is None


@pytest.mark.asyncio
async def test_notifier_fans_out_creation_and_threads_follow_ups(notification_router):
    payloads = []

    def handler(request):
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "ts": f"ts-{len(payloads)}"})

    notifier = SlackNotifier(notification_router, _slack_client(handler))
    ticket = _ticket()

    thread = await notifier.ticket_created(ticket)
    assert (thread.channel, thread.ts) == ("C_OPS", "ts-1")
    assert [p["channel"] for p in payloads] == ["C_OPS", "C_URGENT"]

    ticket.slack_channel_id, ticket.slack_thread_ts = thread.channel, thread.ts
    assignee = SimpleNamespace(id="u1", name="Oscar", slack_user_id="U1")
    assert await notifier.ticket_assigned(ticket, assignee)
    assert payloads[-1]["channel"] == "C_OPS"
    assert payloads[-1]["thread_ts"] == "ts-1"


@pytest.mark.asyncio
async def test_notifier_breach_alert_adds_breach_channel(notification_router):
    channels = []

    def handler(request):
        channels.append(json.loads(request.content)["channel"])
        return httpx.Response(200, json={"ok": True, "ts": "1"})

    notifier = SlackNotifier(notification_router, _slack_client(handler))
    sent = await notifier.sla_breached(_ticket(priority_tier="Low"))

    assert sent == 2
    assert channels == ["C_OPS", "C_BREACH"]


@pytest.mark.asyncio
async def test_rejected_message_is_not_retried_and_keeps_breaker_closed():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"ok": False, "error": "invalid_blocks"})

    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
    client = _slack_client(handler, circuit_breaker=breaker)

    assert await client.post_message(client.build_sla_breach(_ticket(), "C_X")) is None
    assert len(requests) == 1
    assert breaker.state == CircuitState.CLOSED
    await client.close()


@pytest.mark.asyncio
async def test_rate_limited_message_is_retried():
    responses = [
        httpx.Response(200, json={"ok": False, "error": "ratelimited"}),
        httpx.Response(200, json={"ok": True, "ts": "9.9"}),
    ]

    def handler(request):
        return responses.pop(0)

    client = _slack_client(handler)
    assert await client.post_message(client.build_sla_breach(_ticket(), "C_X"), max_retries=2) == "9.9"
    assert responses == []
    await client.close()


def test_long_comment_fits_in_one_section():
    client = SlackClient(bot_token="xoxb-test", app_url="https://portal.test")
    commenter = SimpleNamespace(name="Casey", slack_user_id="U1")
    comment = SimpleNamespace(body="x" * 10_000)

    message = client.build_comment_mention(_ticket(), "C_OPS", comment, commenter, [commenter])

    text = message.blocks[-1]["text"]["text"]
    assert len(text) <= SECTION_TEXT_LIMIT
    assert text.endswith("…")


@pytest.mark.asyncio
async def test_notifier_announces_ticket_in_newly_routed_channels(notification_router):
    channels = []

    def handler(request):
        channels.append(json.loads(request.content)["channel"])
        return httpx.Response(200, json={"ok": True, "ts": "1"})

    notifier = SlackNotifier(notification_router, _slack_client(handler))
    ticket = _ticket()
    previous = notifier.channels_for_ticket(ticket)

    assert await notifier.ticket_rerouted(ticket, previous) == 0
    ticket.is_escalated = True
    assert await notifier.ticket_rerouted(ticket, previous) == 1
    assert channels == ["C_ESC"]


@pytest.mark.asyncio
async def test_follow_ups_stay_in_the_thread_channel(notification_router):
    payloads = []

    def handler(request):
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "ts": "2"})

    notifier = SlackNotifier(notification_router, _slack_client(handler))
    ticket = _ticket(slack_channel_id="C_OPS", slack_thread_ts="ts-1", department="Finance")

    assert await notifier.ticket_solved(ticket)
    assert payloads[-1]["channel"] == "C_OPS"
    assert payloads[-1]["thread_ts"] == "ts-1"
