"""
Ticket Application Services
===========================

Application services orchestrate business logic and coordinate between
domain objects and repositories.

Following SOLID principles:
- Single Responsibility: the pure policy objects decide, this layer fetches
  and persists
- Dependency Inversion: depend on repository abstractions, not concrete
  implementations
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from support_portal.access.domain.entities import User
from support_portal.access.domain.org import OrgHierarchy
from support_portal.config import SLAState, TicketStatus
from support_portal.core import (
    AccessDeniedException,
    ApplicationException,
    DomainException,
    ResourceNotFoundException,
)
from support_portal.priority.domain.value_objects import PriorityResult, VendorTicketHistory
from support_portal.routing.domain.notifications import Notification, NotificationPlanner
from support_portal.routing.services import SlackNotifier
from support_portal.shared.infrastructure.logging import get_logger, log_latency
from support_portal.sla.domain.value_objects import SLACalculator, SLAConfiguration
from support_portal.snapshot.domain.value_objects import SnapshotBuilder, SnapshotBundle
from support_portal.tickets.application.dto import TicketCreateRequest, TicketUpdateRequest
from support_portal.tickets.domain.entities import (
    Category,
    Comment,
    Tag,
    Ticket,
    Vendor,
    format_ticket_number,
    ticket_number_prefix,
)
from support_portal.tickets.domain.value_objects import PolicyConfig

logger = get_logger(__name__)

VENDOR_HISTORY_DAYS = 90

# Fields whose change re-runs the priority scorer
SCORING_FIELDS = ("vendor_handle", "category_id", "issue_type")
# Fields whose change recomputes SLA targets
SLA_FIELDS = ("category_id", "department")


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by id."""

    @abstractmethod
    async def list(self, filters: Optional[dict] = None, limit: int = 100, offset: int = 0) -> List[Ticket]:
        """List tickets, newest first."""

    @abstractmethod
    async def list_open(self) -> List[Ticket]:
        """Tickets in New/Open/Pending."""

    @abstractmethod
    async def list_without_snapshot(self) -> List[Ticket]:
        """Tickets whose snapshot has never been captured."""

    @abstractmethod
    async def next_sequence(self, prefix: str) -> int:
        """Next ticket-number sequence for ``SS`` or ``CS``."""

    @abstractmethod
    async def count_vendor_tickets(self, vendor_handle: str, since: datetime) -> int:
        """Vendor tickets created at or after ``since``."""

    @abstractmethod
    async def count_vendor_category_tickets(self, vendor_handle: str, category_id: str, since: datetime) -> int:
        """Vendor tickets on one category created at or after ``since``."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Insert a ticket without snapshot columns."""

    @abstractmethod
    async def update(self, ticket: Ticket) -> Ticket:
        """Persist mutable ticket fields; never touches snapshot columns."""

    @abstractmethod
    async def capture_snapshot(self, ticket_id: str, bundle: SnapshotBundle) -> bool:
        """Write snapshot columns only if none are captured yet; False on no-op."""

    @abstractmethod
    async def replace_snapshot(self, ticket_id: str, bundle: SnapshotBundle, expected_version: int) -> bool:
        """Explicit resnapshot guarded on the current version; False on no-op."""

    @abstractmethod
    async def update_sla_status(self, ticket_id: str, sla_status: str) -> None:
        """Store the latest SLA state."""


class IUserRepository(ABC):
    """Interface for staff user data access."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        """Get user by id."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive email lookup."""

    @abstractmethod
    async def list_active(self) -> List[User]:
        """All active users."""

    @abstractmethod
    async def list_all(self) -> List[User]:
        """Every user, active or not."""

    @abstractmethod
    async def update_manager(self, user_id: str, manager_id: Optional[str]) -> None:
        """Re-point a user's manager reference."""


class ICatalogRepository(ABC):
    """Interface for vendor, category, tag and SLA configuration lookups."""

    @abstractmethod
    async def get_vendor(self, handle: str) -> Optional[Vendor]:
        """Get vendor by handle."""

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[Category]:
        """Get category by id."""

    @abstractmethod
    async def list_tags(self, names: Sequence[str]) -> List[Tag]:
        """Tags with the given names; unknown names are absent."""

    @abstractmethod
    async def list_sla_configurations(self, category_id: str) -> List[SLAConfiguration]:
        """SLA rows for a category, active or not."""


class ICommentRepository(ABC):
    """Interface for comment data access."""

    @abstractmethod
    async def create(self, comment: Comment) -> Comment:
        """Insert a comment."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[Comment]:
        """Comments on a ticket, oldest first."""


class INotificationRepository(ABC):
    """Interface for in-app notification storage."""

    @abstractmethod
    async def create_many(self, notifications: Sequence[Notification]) -> None:
        """Insert notifications."""


class IPolicyProvider(ABC):
    """Interface for policy configuration access."""

    @abstractmethod
    def get_config(self) -> PolicyConfig:
        """Get current policy configuration."""


# ========== Application Services ==========

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketService:
    """
    Ticket orchestration.

    Flow on create: score -> SLA targets -> number -> persist -> snapshot
    (captured once) -> in-app notifications -> commit -> Slack fan-out.

    ``commit`` is awaited before anything is posted to Slack, so a message
    never announces a ticket that was rolled back.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        user_repository: IUserRepository,
        catalog_repository: ICatalogRepository,
        comment_repository: ICommentRepository,
        notification_repository: INotificationRepository,
        policy_provider: IPolicyProvider,
        notifier: Optional[SlackNotifier] = None,
        planner: Optional[NotificationPlanner] = None,
        snapshot_builder: Optional[SnapshotBuilder] = None,
        commit: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self._tickets = ticket_repository
        self._users = user_repository
        self._catalog = catalog_repository
        self._comments = comment_repository
        self._notifications = notification_repository
        self._policy_provider = policy_provider
        self._notifier = notifier
        self._planner = planner or NotificationPlanner()
        self._builder = snapshot_builder or SnapshotBuilder()
        self._commit = commit

    # ========== Identity / Access ==========

    async def authenticate(self, email: Optional[str]) -> User:
        """
        Resolve the calling user from an email address.

        Raises:
            AccessDeniedException: unknown or inactive user
        """
        if not email or not email.strip():
            raise AccessDeniedException("Authentication required")
        user = await self._users.get_by_email(email.strip().lower())
        if user is None or not user.is_active:
            raise AccessDeniedException("Unknown or inactive user", {"email": email})
        return user

    def access_summary(self, actor: User) -> Dict[str, Any]:
        access = self._policy_provider.get_config().access_evaluator()
        return {
            "user_id": actor.id,
            "email": actor.email,
            "role": actor.role_name,
            "department": actor.department,
            "permissions": sorted(access.effective_permissions(actor)),
            **access.department_access_summary(actor),
        }

    async def assign_manager(self, user_id: str, manager_id: Optional[str], actor: User) -> List[User]:
        """
        Re-point a user's manager and return the new management chain.

        Raises:
            AccessDeniedException: actor lacks ``edit:users``
            ResourceNotFoundException: unknown user or manager
            OrgHierarchyCycleException: the edit would close a loop
        """
        policy = self._policy_provider.get_config()
        self._require_permission(policy, actor, "edit:users")

        org = OrgHierarchy(await self._users.list_all())
        if org.get(user_id) is None:
            raise ResourceNotFoundException("User", user_id)
        if manager_id is not None and org.get(manager_id) is None:
            raise ResourceNotFoundException("User", manager_id)

        org.assign_manager(user_id, manager_id)
        await self._users.update_manager(user_id, manager_id)

        logger.info(
            "Manager assigned",
            extra={"user_id": user_id, "manager_id": manager_id, "assigned_by": actor.id}
        )
        return org.management_chain(user_id)

    def _require_permission(self, policy: PolicyConfig, actor: Optional[User], permission: str) -> None:
        if not policy.access_evaluator().has_permission(actor, permission):
            raise AccessDeniedException(
                f"Permission '{permission}' required",
                {"permission": permission}
            )

    async def _load_visible(self, policy: PolicyConfig, ticket_id: str, actor: Optional[User]) -> Ticket:
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        if not policy.access_evaluator().can_view_ticket(actor, ticket):
            raise AccessDeniedException(
                "Access denied. You can only view tickets in your department.",
                {"ticket_id": ticket_id}
            )
        return ticket

    async def _flush_unit_of_work(self) -> None:
        if self._commit is not None:
            await self._commit()

    # ========== Queries ==========

    async def get_ticket(self, ticket_id: str, actor: User) -> Ticket:
        policy = self._policy_provider.get_config()
        self._require_permission(policy, actor, "view:tickets")
        return await self._load_visible(policy, ticket_id, actor)

    async def list_tickets(
        self,
        actor: User,
        filters: Optional[dict] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Ticket]:
        policy = self._policy_provider.get_config()
        self._require_permission(policy, actor, "view:tickets")
        tickets = await self._tickets.list(filters or {}, limit=limit, offset=offset)
        return policy.access_evaluator().filter_tickets_by_department_access(tickets, actor)

    async def list_comments(self, ticket_id: str, actor: User) -> List[Comment]:
        policy = self._policy_provider.get_config()
        await self._load_visible(policy, ticket_id, actor)
        return await self._comments.list_for_ticket(ticket_id)

    # ========== Scoring helpers ==========

    async def _vendor_history(
        self,
        vendor_handle: Optional[str],
        category_id: Optional[str],
        now: datetime,
    ) -> VendorTicketHistory:
        if not vendor_handle:
            return VendorTicketHistory()
        since = now - timedelta(days=VENDOR_HISTORY_DAYS)
        ticket_count = await self._tickets.count_vendor_tickets(vendor_handle, since)
        repeat_count = 0
        if category_id:
            repeat_count = await self._tickets.count_vendor_category_tickets(vendor_handle, category_id, since)
        return VendorTicketHistory(ticket_count=ticket_count, repeat_issue_count=repeat_count)

    async def _resolve_vendor(self, policy: PolicyConfig, handle: Optional[str]) -> Optional[Vendor]:
        if not handle:
            return None
        vendor = await self._catalog.get_vendor(handle)
        if vendor is None:
            logger.warning("Vendor not found, scoring without GMV", extra={"vendor_handle": handle})
            return None
        if vendor.gmv_tier is None and vendor.gmv_90_day is not None:
            vendor = replace(vendor, gmv_tier=policy.priority.derive_gmv_tier(vendor.gmv_90_day))
        return vendor

    async def _resolve_category(self, category_id: Optional[str]) -> Optional[Category]:
        if not category_id:
            return None
        category = await self._catalog.get_category(category_id)
        if category is None:
            logger.warning("Category not found", extra={"category_id": category_id})
        return category

    async def _score(self, policy: PolicyConfig, ticket: Any, now: datetime) -> PriorityResult:
        vendor = await self._resolve_vendor(policy, ticket.vendor_handle)
        category = await self._resolve_category(ticket.category_id)
        history = await self._vendor_history(ticket.vendor_handle, ticket.category_id, now)
        return policy.priority_scorer().score(ticket, vendor, category, history)

    async def _sla_configurations(self, category_id: Optional[str]) -> List[SLAConfiguration]:
        if not category_id:
            return []
        return await self._catalog.list_sla_configurations(category_id)

    @staticmethod
    def _apply_priority(ticket: Ticket, result: PriorityResult) -> None:
        ticket.priority_score = result.score
        ticket.priority_tier = result.tier.value
        ticket.priority_badge = result.badge.value
        ticket.priority_breakdown = result.to_dict()["breakdown"]

    # ========== Commands ==========

    async def create_ticket(self, request: TicketCreateRequest, actor: User) -> Ticket:
        """
        Create, score, snapshot and announce a ticket.

        Raises:
            AccessDeniedException: actor lacks ``create:tickets``
            ValidationException: invalid creation timestamp
        """
        policy = self._policy_provider.get_config()
        self._require_permission(policy, actor, "create:tickets")

        with log_latency(logger, "ticket_create", department=request.department):
            now = (
                SLACalculator.coerce_timestamp(request.created_at)
                if request.created_at is not None else _utcnow()
            )
            vendor = await self._resolve_vendor(policy, request.vendor_handle)
            category = await self._resolve_category(request.category_id)
            history = await self._vendor_history(request.vendor_handle, request.category_id, now)
            priority = policy.priority_scorer().score(request, vendor, category, history)

            calculator = policy.sla_calculator()
            configurations = await self._sla_configurations(request.category_id)
            targets = calculator.compute_targets(now, request.category_id, request.department, configurations)

            sequence = await self._tickets.next_sequence(ticket_number_prefix(request.vendor_handle))
            ticket = Ticket(
                id=Ticket.new_id(),
                ticket_number=format_ticket_number(sequence, bool(request.vendor_handle)),
                subject=request.subject,
                description=request.description,
                department=request.department,
                owner_team=request.owner_team,
                vendor_handle=request.vendor_handle,
                category_id=request.category_id,
                issue_type=request.issue_type or (category.issue_type if category else None),
                is_escalated=request.is_escalated,
                tags=list(request.tags),
                customer=request.customer,
                order_ids=list(request.order_ids),
                attachments=list(request.attachments),
                sla_response_target=targets.response_target,
                sla_resolve_target=targets.resolve_target,
                sla_status=SLAState.ON_TRACK.value,
                assignee_id=request.assignee_id,
                created_by_id=actor.id,
                created_at=now,
                updated_at=now,
            )
            self._apply_priority(ticket, priority)
            await self._tickets.create(ticket)

            tags = await self._catalog.list_tags(ticket.tags)
            bundle = self._builder.build_snapshot(
                ticket, category, targets.configuration, priority, tags, captured_at=now
            )
            if await self._tickets.capture_snapshot(ticket.id, bundle):
                ticket.capture_snapshot(bundle)

        logger.info(
            "Ticket created",
            extra={
                "ticket_number": ticket.ticket_number,
                "department": ticket.department,
                "priority_tier": ticket.priority_tier,
                "priority_score": ticket.priority_score,
            }
        )

        users = await self._users.list_active()
        planned = self._planner.ticket_created(ticket, users)
        planned += self._planner.ticket_assigned(ticket, actor)
        await self._notifications.create_many(planned)
        await self._flush_unit_of_work()

        if self._notifier is not None:
            org = OrgHierarchy(users)
            assignee = org.get(ticket.assignee_id) if ticket.assignee_id else None
            manager = org.manager_of(assignee.id) if assignee else None
            thread = await self._notifier.ticket_created(ticket, actor, assignee, manager)
            if thread:
                ticket.slack_channel_id = thread.channel
                ticket.slack_thread_ts = thread.ts
                await self._tickets.update(ticket)

        return ticket

    async def update_ticket(self, ticket_id: str, request: TicketUpdateRequest, actor: User) -> Ticket:
        """
        Apply a partial update.

        Department rules decide which fields the actor may touch. Snapshot
        columns are never written here.

        Raises:
            ResourceNotFoundException: unknown ticket
            AccessDeniedException: permission or department rule failed
        """
        policy = self._policy_provider.get_config()
        self._require_permission(policy, actor, "edit:tickets")
        ticket = await self._load_visible(policy, ticket_id, actor)

        changes = request.changes()
        if not changes:
            return ticket

        denial = policy.access_evaluator().validate_ticket_update(actor, ticket, changes)
        if denial:
            raise AccessDeniedException(denial, {"ticket_id": ticket_id, "fields": sorted(changes)})

        now = _utcnow()
        previous_status = ticket.status
        previous_assignee = ticket.assignee_id
        previous_channels = self._notifier.channels_for_ticket(ticket) if self._notifier else []

        for name, value in changes.items():
            if name == "status":
                ticket.change_status(TicketStatus(value), now)
            elif name == "sla_status":
                ticket.sla_status = value.value if value is not None else None
            else:
                setattr(ticket, name, value)

        if any(name in changes for name in SCORING_FIELDS):
            self._apply_priority(ticket, await self._score(policy, ticket, now))

        if any(name in changes for name in SLA_FIELDS):
            targets = policy.sla_calculator().compute_targets(
                ticket.created_at,
                ticket.category_id,
                ticket.department,
                await self._sla_configurations(ticket.category_id),
            )
            ticket.sla_response_target = targets.response_target
            ticket.sla_resolve_target = targets.resolve_target

        ticket.updated_at = now
        await self._tickets.update(ticket)

        logger.info(
            "Ticket updated",
            extra={"ticket_number": ticket.ticket_number, "fields": sorted(changes)}
        )

        planned: List[Notification] = []
        assigned = ticket.assignee_id and ticket.assignee_id != previous_assignee
        solved = ticket.status == TicketStatus.SOLVED and previous_status != TicketStatus.SOLVED
        if assigned:
            planned += self._planner.ticket_assigned(ticket, actor)
        if solved:
            planned += self._planner.ticket_solved(ticket, actor)
        await self._notifications.create_many(planned)
        await self._flush_unit_of_work()

        if self._notifier is not None:
            await self._notifier.ticket_rerouted(ticket, previous_channels, actor)
            if assigned:
                assignee = await self._users.get_by_id(ticket.assignee_id)
                await self._notifier.ticket_assigned(ticket, assignee, actor)
            if solved:
                await self._notifier.ticket_solved(ticket, actor)

        return ticket

    async def add_comment(self, ticket_id: str, body: str, actor: User) -> Comment:
        policy = self._policy_provider.get_config()
        ticket = await self._load_visible(policy, ticket_id, actor)

        comment = Comment(ticket_id=ticket.id, body=body, author_id=actor.id)
        await self._comments.create(comment)

        if actor.id != ticket.created_by_id and ticket.first_response_at is None:
            ticket.mark_first_response(comment.created_at)
            await self._tickets.update(ticket)

        users = await self._users.list_active()
        planned = self._planner.comment_added(ticket, comment, actor)
        planned += self._planner.comment_mentions(ticket, comment, actor, users)
        await self._notifications.create_many(planned)
        await self._flush_unit_of_work()

        if self._notifier is not None:
            mentioned = self._planner.mentioned_users(comment.body, users, actor)
            if mentioned:
                await self._notifier.comment_mentioned(ticket, comment, actor, mentioned)

        return comment

    # ========== Snapshots ==========

    async def _build_for(
        self,
        policy: PolicyConfig,
        ticket: Ticket,
        captured_at: datetime,
        version: int,
    ) -> SnapshotBundle:
        category = await self._resolve_category(ticket.category_id)
        configuration = SLACalculator.select_configuration(
            ticket.category_id,
            ticket.department,
            await self._sla_configurations(ticket.category_id),
        )
        tags = await self._catalog.list_tags(ticket.tags)
        return self._builder.build_snapshot(
            ticket, category, configuration, None, tags, captured_at=captured_at, version=version
        )

    async def resnapshot_ticket(self, ticket_id: str, actor: User) -> Ticket:
        """
        Explicit administrative re-snapshot from the current catalog.

        Raises:
            AccessDeniedException: actor lacks ``edit:config``
        """
        policy = self._policy_provider.get_config()
        self._require_permission(policy, actor, "edit:config")
        ticket = await self._load_visible(policy, ticket_id, actor)

        current_version = ticket.snapshot_version
        bundle = await self._build_for(policy, ticket, _utcnow(), current_version + 1)
        if not await self._tickets.replace_snapshot(ticket.id, bundle, expected_version=current_version):
            raise DomainException(
                "Ticket snapshot changed concurrently; retry the resnapshot",
                {"ticket_id": ticket.id, "expected_version": current_version}
            )
        ticket.resnapshot(bundle)

        logger.info(
            "Ticket resnapshotted",
            extra={"ticket_number": ticket.ticket_number, "snapshot_version": ticket.snapshot_version}
        )
        return ticket

    async def backfill_snapshots(self, actor: Optional[User] = None) -> Dict[str, Any]:
        """
        Capture snapshots for tickets that never had one.

        Each ticket is snapshotted as of its creation time. A failing ticket
        is recorded and skipped, the rest still migrate.
        """
        policy = self._policy_provider.get_config()
        if actor is not None:
            self._require_permission(policy, actor, "edit:config")

        pending = await self._tickets.list_without_snapshot()
        migrated = skipped = failed = 0
        errors: List[Dict[str, str]] = []

        for ticket in pending:
            try:
                bundle = await self._build_for(policy, ticket, ticket.created_at, 1)
                if await self._tickets.capture_snapshot(ticket.id, bundle):
                    migrated += 1
                else:
                    skipped += 1
            except ApplicationException as e:
                failed += 1
                errors.append({"ticket_id": ticket.id, "error": e.message})
                logger.error(
                    "Snapshot backfill failed for ticket",
                    extra={"ticket_id": ticket.id, "error": e.message}
                )

        logger.info(
            "Snapshot backfill finished",
            extra={"total": len(pending), "migrated": migrated, "skipped": skipped, "failed": failed}
        )
        return {
            "total": len(pending),
            "migrated": migrated,
            "skipped": skipped,
            "failed": failed,
            "errors": errors,
        }
