"""
Slack Web API Integration
=========================

Posts ticket notifications through ``chat.postMessage`` with a bot token.

- Circuit breaker to prevent cascade failures
- Exponential backoff retry for transient failures; rejected payloads are not retried
- Threading: updates are posted as replies to the creation message ``ts``
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from support_portal.config import settings
from support_portal.core import SlackException
from support_portal.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

PRIORITY_EMOJI = {
    "critical": "🔴",
    "high": "🟠",
    "medium": "🟡",
    "low": "🟢",
}

# Slack rejects section text longer than 3000 characters
SECTION_TEXT_LIMIT = 3000
QUOTED_BODY_LIMIT = 2900

# ok:false errors worth another attempt; anything else fails the same way again
RETRYABLE_SLACK_ERRORS = frozenset({
    "ratelimited", "internal_error", "fatal_error", "service_unavailable", "request_timeout",
})


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def priority_emoji(priority: Optional[str]) -> str:
    return PRIORITY_EMOJI.get((priority or "").lower(), "⚪")


def user_mention(user) -> str:
    if user is None:
        return "Unassigned"
    return f"<@{user.slack_user_id}>" if user.slack_user_id else user.name


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops hammering Slack once deliveries keep failing.

    Each message that exhausts its retries counts as one failure. After
    ``failure_threshold`` of them the breaker opens and sends are skipped
    until ``recovery_timeout`` seconds pass; the next send is then a trial
    request that closes or re-opens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


@dataclass
class SlackMessage:
    """One ``chat.postMessage`` payload."""
    channel: str
    text: str
    blocks: List[Dict[str, Any]] = field(default_factory=list)
    thread_ts: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "channel": self.channel,
            "text": self.text,
            "blocks": self.blocks,
            "link_names": True,
        }
        if self.thread_ts:
            payload["thread_ts"] = self.thread_ts
        return payload


class SlackClient:
    """
    Slack Web API client with circuit breaker and retry logic.

    A missing bot token disables delivery; every send then returns ``None``.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        app_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._bot_token = bot_token if bot_token is not None else settings.slack_bot_token
        self._api_url = (api_url or settings.slack_api_url).rstrip("/")
        self._timeout = timeout_seconds or settings.slack_timeout_seconds
        self._app_url = (app_url or settings.app_url).rstrip("/")
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._bot_token)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def ticket_url(self, ticket_id: str) -> str:
        return f"{self._app_url}/ticket/{ticket_id}"

    # ========== Message builders ==========

    def build_ticket_created(self, ticket, channel: str, creator=None, assignee=None, manager=None) -> SlackMessage:
        url = self.ticket_url(ticket.id)
        emoji = priority_emoji(ticket.priority_tier)
        blocks: List[Dict[str, Any]] = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{emoji} New Ticket - {ticket.ticket_number}", "emoji": True}
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Ticket:*\n<{url}|{ticket.ticket_number}>"},
                    {"type": "mrkdwn", "text": f"*Priority:*\n{emoji} {ticket.priority_tier or 'Normal'}"},
                    {"type": "mrkdwn", "text": f"*Department:*\n{ticket.department or 'General'}"},
                    {"type": "mrkdwn", "text": f"*Created By:*\n{(creator.name or creator.email) if creator else 'Unknown'}"},
                ]
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Subject:* {ticket.subject}\n*Vendor:* {ticket.vendor_handle or 'N/A'}"}
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Assigned To:* {user_mention(assignee)}"}
            },
        ]
        if manager is not None and manager.slack_user_id:
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"👔 *Manager notified:* <@{manager.slack_user_id}>"}]
            })
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"🔗 <{url}|View Ticket in Portal>"}
        })
        return SlackMessage(
            channel=channel,
            text=f"New ticket {ticket.ticket_number}: {ticket.subject}",
            blocks=blocks,
        )

    def _ticket_fields(self, ticket) -> Dict[str, Any]:
        url = self.ticket_url(ticket.id)
        emoji = priority_emoji(ticket.priority_tier)
        return {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Ticket:*\n<{url}|{ticket.ticket_number}>"},
                {"type": "mrkdwn", "text": f"*Priority:*\n{emoji} {ticket.priority_tier or 'Normal'}"},
            ]
        }

    def build_ticket_assigned(self, ticket, channel: str, assignee, assigner=None, thread_ts=None) -> SlackMessage:
        assigner_text = (assigner.name or assigner.email) if assigner else "System"
        return SlackMessage(
            channel=channel,
            text=f"Ticket {ticket.ticket_number} assigned to {assignee.name}",
            blocks=[
                self._ticket_fields(ticket),
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": f"✅ *Assigned:* {user_mention(assignee)} (by {assigner_text})"}
                },
            ],
            thread_ts=thread_ts,
        )

    def build_ticket_solved(self, ticket, channel: str, solver=None, thread_ts=None) -> SlackMessage:
        solver_text = (solver.name or solver.email) if solver else "System"
        return SlackMessage(
            channel=channel,
            text=f"Ticket {ticket.ticket_number} solved",
            blocks=[
                self._ticket_fields(ticket),
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": f"🎉 *Solved by:* {solver_text}"}
                },
            ],
            thread_ts=thread_ts,
        )

    def build_ticket_rerouted(self, ticket, channel: str, actor=None) -> SlackMessage:
        """Top-level post for a channel an update newly routed the ticket to."""
        actor_text = (actor.name or actor.email) if actor else "System"
        flags = []
        if ticket.is_escalated:
            flags.append("⚠️ Escalated")
        status = getattr(ticket.status, "value", ticket.status)
        return SlackMessage(
            channel=channel,
            text=f"Ticket {ticket.ticket_number} updated: {ticket.subject}",
            blocks=[
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": f"🔁 Ticket Update - {ticket.ticket_number}", "emoji": True}
                },
                self._ticket_fields(ticket),
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": truncate(
                        f"*Subject:* {ticket.subject}\n*Department:* {ticket.department} | *Status:* {status}"
                        + (f"\n{' | '.join(flags)}" if flags else ""),
                        SECTION_TEXT_LIMIT,
                    )}
                },
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": f"Updated by {actor_text}"}]
                },
            ],
        )

    def build_comment_mention(self, ticket, channel: str, comment, commenter, mentioned, thread_ts=None) -> SlackMessage:
        mentions = ", ".join(user_mention(user) for user in mentioned)
        return SlackMessage(
            channel=channel,
            text=f"{commenter.name} mentioned {len(mentioned)} user(s) on {ticket.ticket_number}",
            blocks=[
                self._ticket_fields(ticket),
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": truncate(
                        f"💬 *{commenter.name}* mentioned {mentions}:\n>{truncate(comment.body, QUOTED_BODY_LIMIT)}",
                        SECTION_TEXT_LIMIT,
                    )}
                },
            ],
            thread_ts=thread_ts,
        )

    def build_sla_breach(self, ticket, channel: str, thread_ts=None) -> SlackMessage:
        target = ticket.sla_resolve_target.isoformat() if ticket.sla_resolve_target else "n/a"
        return SlackMessage(
            channel=channel,
            text=f"SLA breached on {ticket.ticket_number}",
            blocks=[
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": "🚨 SLA Breach Alert", "emoji": True}
                },
                self._ticket_fields(ticket),
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": f"Department: {ticket.department} | Resolve target: {target}"}]
                },
            ],
            thread_ts=thread_ts,
        )

    # ========== Delivery ==========

    async def post_message(self, message: SlackMessage, max_retries: int = 3) -> Optional[str]:
        """
        Send one message.

        Returns:
            The Slack message ``ts`` if sent, otherwise None
        """
        if not self.is_configured:
            logger.debug("Slack bot token not configured, skipping notification")
            return None

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"channel": message.channel}
            )
            return None

        for attempt in range(max_retries):
            try:
                client = await self._get_client()
                response = await client.post(
                    f"{self._api_url}/chat.postMessage",
                    json=message.to_payload(),
                    headers={"Authorization": f"Bearer {self._bot_token}"},
                )
                if response.status_code != 200:
                    retryable = response.status_code == 429 or response.status_code >= 500
                    raise SlackException(f"HTTP {response.status_code}", {"retryable": retryable})

                body = response.json()
                if not body.get("ok"):
                    error = body.get("error", "unknown_error")
                    raise SlackException(error, {"retryable": error in RETRYABLE_SLACK_ERRORS})

                self._circuit_breaker.record_success()
                logger.info(
                    "Slack notification sent",
                    extra={"channel": message.channel, "threaded": bool(message.thread_ts)}
                )
                return body.get("ts")

            except SlackException as e:
                logger.error(
                    "Slack notification failed",
                    extra={
                        "error": e.message,
                        "attempt": attempt + 1,
                        "channel": message.channel
                    }
                )
                if not e.details.get("retryable"):
                    # The same request would be rejected again; Slack itself is healthy
                    return None

            except (httpx.HTTPError, ValueError) as e:
                logger.error(
                    "Slack notification failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "channel": message.channel
                    }
                )

            if attempt < max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        return None

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
