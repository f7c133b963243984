"""
Routing Services
================

Slack fan-out for ticket events.

Coordinates the Notification Router (which channels) with the Slack client
(delivery). Delivery failures are logged by the client and never raised, so
a Slack outage cannot fail a ticket write.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from support_portal.config import SLAState
from support_portal.routing.domain.value_objects import NotificationContext, NotificationRouter
from support_portal.routing.infrastructure.external import SlackClient
from support_portal.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SlackThread:
    """Where a ticket's creation message landed; follow-ups reply here."""
    channel: str
    ts: str


class SlackNotifier:
    """
    Posts ticket events to the routed Slack channels.

    Creation and SLA breach messages go to every routed channel. When an
    update routes a ticket into channels it was not in before, those
    channels get a top-level update. Follow-up events are threaded under
    the creation message in the channel that message was posted to.
    """

    def __init__(self, router: NotificationRouter, slack_client: SlackClient):
        self._router = router
        self._slack = slack_client

    @property
    def router(self) -> NotificationRouter:
        return self._router

    @property
    def is_configured(self) -> bool:
        return self._slack.is_configured

    def channels_for_ticket(self, ticket, **overrides) -> List[str]:
        return self._router.channels_for(NotificationContext.from_ticket(ticket, **overrides))

    def _thread_target(self, ticket) -> Tuple[Optional[str], Optional[str]]:
        channel = getattr(ticket, "slack_channel_id", None)
        if channel and ticket.slack_thread_ts:
            return channel, ticket.slack_thread_ts
        channels = self.channels_for_ticket(ticket)
        return (channels[0] if channels else None), None

    async def ticket_created(self, ticket, creator=None, assignee=None, manager=None) -> Optional[SlackThread]:
        """Returns the first message that was delivered, used as thread root."""
        thread = None
        for channel in self.channels_for_ticket(ticket):
            ts = await self._slack.post_message(
                self._slack.build_ticket_created(ticket, channel, creator, assignee, manager)
            )
            if thread is None and ts:
                thread = SlackThread(channel=channel, ts=ts)
        return thread

    async def ticket_rerouted(self, ticket, previous_channels: Sequence[str], actor=None) -> int:
        """Announce the ticket in channels its update newly routed it to."""
        previous = set(previous_channels)
        added = [c for c in self.channels_for_ticket(ticket) if c not in previous]
        sent = 0
        for channel in added:
            if await self._slack.post_message(self._slack.build_ticket_rerouted(ticket, channel, actor)):
                sent += 1
        if added:
            logger.info(
                "Ticket routed to new channels",
                extra={
                    "ticket_number": ticket.ticket_number,
                    "channels": self._router.channel_names(added),
                    "channels_reached": sent,
                }
            )
        return sent

    async def ticket_assigned(self, ticket, assignee, assigner=None) -> bool:
        channel, thread_ts = self._thread_target(ticket)
        if channel is None or assignee is None:
            return False
        message = self._slack.build_ticket_assigned(ticket, channel, assignee, assigner, thread_ts=thread_ts)
        return await self._slack.post_message(message) is not None

    async def ticket_solved(self, ticket, solver=None) -> bool:
        channel, thread_ts = self._thread_target(ticket)
        if channel is None:
            return False
        message = self._slack.build_ticket_solved(ticket, channel, solver, thread_ts=thread_ts)
        return await self._slack.post_message(message) is not None

    async def comment_mentioned(self, ticket, comment, commenter, mentioned: Iterable) -> bool:
        mentioned = list(mentioned)
        channel, thread_ts = self._thread_target(ticket)
        if channel is None or not mentioned:
            return False
        message = self._slack.build_comment_mention(
            ticket, channel, comment, commenter, mentioned, thread_ts=thread_ts
        )
        return await self._slack.post_message(message) is not None

    async def sla_breached(self, ticket) -> int:
        """Returns the number of channels the alert reached."""
        sent = 0
        for channel in self.channels_for_ticket(ticket, sla_status=SLAState.BREACHED.value):
            if await self._slack.post_message(self._slack.build_sla_breach(ticket, channel)):
                sent += 1
        logger.info(
            "SLA breach alert dispatched",
            extra={"ticket_number": ticket.ticket_number, "channels_reached": sent}
        )
        return sent
