"""
SLA Services
============

Periodic SLA sweep over open tickets.

For every open ticket the sweep:
1. Evaluates the response and resolution clocks
2. Stores the ticket-level SLA state when it changed
3. Sends a Slack breach alert on the transition into ``breached``
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from support_portal.config import SLAState
from support_portal.shared.infrastructure.logging import get_logger, log_latency
from support_portal.sla.domain.value_objects import SLACalculator

logger = get_logger(__name__)


class SLAEvaluator:
    """
    Evaluates SLA state for all open tickets.

    ``calculator_factory`` is called once per sweep so a reloaded policy
    file takes effect on the next run.
    """

    def __init__(
        self,
        calculator_factory: Callable[[], SLACalculator],
        notifier=None,  # SlackNotifier from support_portal.routing.services
    ):
        self._calculator_factory = calculator_factory
        self._notifier = notifier

    def evaluate_ticket(self, calculator: SLACalculator, ticket, current_time: datetime) -> SLAState:
        response_state = calculator.evaluate_status(
            ticket.created_at, ticket.sla_response_target, current_time, ticket.first_response_at
        )
        resolution_state = calculator.evaluate_status(
            ticket.created_at, ticket.sla_resolve_target, current_time, ticket.resolved_at
        )
        return SLACalculator.most_urgent(response_state, resolution_state)

    async def evaluate(
        self,
        ticket_repository,
        current_time: Optional[datetime] = None,
        commit: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> dict:
        """
        Evaluate all open tickets.

        Breach alerts go out only after the new states are committed.

        Args:
            ticket_repository: ITicketRepository bound to the sweep's session
            current_time: Evaluation instant (defaults to now)
            commit: Commits the sweep's session

        Returns:
            Summary of evaluation results
        """
        calculator = self._calculator_factory()
        current_time = current_time or datetime.now(timezone.utc)

        changed = 0
        breached = []
        notifications_sent = 0

        with log_latency(logger, "sla_sweep"):
            tickets = await ticket_repository.list_open()
            for ticket in tickets:
                state = self.evaluate_ticket(calculator, ticket, current_time)
                if state.value == ticket.sla_status:
                    continue

                previous = ticket.sla_status
                ticket.sla_status = state.value
                await ticket_repository.update_sla_status(ticket.id, state.value)
                changed += 1

                if state == SLAState.BREACHED:
                    breached.append(ticket)
                    logger.warning(
                        "SLA breached",
                        extra={"ticket_number": ticket.ticket_number, "previous_state": previous}
                    )

            if commit is not None:
                await commit()

            if self._notifier is not None:
                for ticket in breached:
                    if await self._notifier.sla_breached(ticket):
                        notifications_sent += 1

        return {
            "tickets_evaluated": len(tickets),
            "status_changes": changed,
            "breaches": len(breached),
            "notifications_sent": notifications_sent,
        }
