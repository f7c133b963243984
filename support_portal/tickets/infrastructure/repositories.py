"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import Integer, cast, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from support_portal.access.domain.entities import User
from support_portal.config import OPEN_STATUSES, GmvTier, IssueType, Role, TicketStatus
from support_portal.core import RepositoryException
from support_portal.routing.domain.notifications import Notification
from support_portal.shared.infrastructure.logging import get_logger
from support_portal.sla.domain.value_objects import SLAConfiguration
from support_portal.snapshot.domain.value_objects import SnapshotBundle
from support_portal.tickets.application.services import (
    ICatalogRepository,
    ICommentRepository,
    INotificationRepository,
    ITicketRepository,
    IUserRepository,
)
from support_portal.tickets.domain.entities import Category, Comment, Tag, Ticket, Vendor
from support_portal.tickets.infrastructure.models import (
    CategoryModel,
    CommentModel,
    NotificationModel,
    SLAConfigurationModel,
    TagModel,
    TicketModel,
    TicketSequenceModel,
    UserModel,
    VendorModel,
)

logger = get_logger(__name__)

# Columns written by create/update; snapshot columns are deliberately absent
MUTABLE_TICKET_COLUMNS = (
    "subject", "description", "department", "owner_team", "vendor_handle",
    "category_id", "is_escalated", "tags", "customer", "order_ids", "attachments",
    "priority_score", "priority_tier", "priority_badge", "priority_breakdown",
    "sla_response_target", "sla_resolve_target", "sla_status",
    "first_response_at", "resolved_at", "assignee_id", "slack_thread_ts", "slack_channel_id",
    "updated_at",
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _enum_or_raw(enum_cls, value):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _value(obj):
    return getattr(obj, "value", obj)


# ========== Mappers ==========

def ticket_to_entity(model: TicketModel) -> Ticket:
    return Ticket(
        id=model.id,
        ticket_number=model.ticket_number,
        subject=model.subject,
        description=model.description,
        department=model.department,
        owner_team=model.owner_team,
        vendor_handle=model.vendor_handle,
        category_id=model.category_id,
        issue_type=_enum_or_raw(IssueType, model.issue_type),
        status=TicketStatus(model.status),
        is_escalated=model.is_escalated,
        tags=list(model.tags or []),
        customer=model.customer,
        order_ids=list(model.order_ids or []),
        attachments=list(model.attachments or []),
        priority_score=model.priority_score,
        priority_tier=model.priority_tier,
        priority_badge=model.priority_badge,
        priority_breakdown=dict(model.priority_breakdown or {}),
        sla_response_target=_aware(model.sla_response_target),
        sla_resolve_target=_aware(model.sla_resolve_target),
        sla_status=model.sla_status,
        first_response_at=_aware(model.first_response_at),
        resolved_at=_aware(model.resolved_at),
        assignee_id=model.assignee_id,
        created_by_id=model.created_by_id,
        slack_thread_ts=model.slack_thread_ts,
        slack_channel_id=model.slack_channel_id,
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
        category_snapshot=model.category_snapshot,
        sla_snapshot=model.sla_snapshot,
        priority_snapshot=model.priority_snapshot,
        tags_snapshot=model.tags_snapshot,
        snapshot_version=model.snapshot_version,
        snapshot_captured_at=_aware(model.snapshot_captured_at),
    )


def _ticket_column_values(ticket: Ticket) -> dict:
    values = {name: getattr(ticket, name) for name in MUTABLE_TICKET_COLUMNS}
    values["status"] = _value(ticket.status)
    values["issue_type"] = _value(ticket.issue_type)
    return values


def user_to_entity(model: UserModel) -> User:
    return User(
        id=model.id,
        email=model.email,
        name=model.name,
        role=_enum_or_raw(Role, model.role),
        department=model.department,
        sub_department=model.sub_department,
        additional_roles=list(model.additional_roles or []),
        custom_permissions=model.custom_permissions,
        manager_id=model.manager_id,
        slack_user_id=model.slack_user_id,
        is_active=model.is_active,
    )


def vendor_to_entity(model: VendorModel) -> Vendor:
    return Vendor(
        handle=model.handle,
        name=model.name,
        gmv_90_day=model.gmv_90_day,
        gmv_tier=_enum_or_raw(GmvTier, model.gmv_tier),
        region=model.region,
        zone=model.zone,
        country=model.country,
        kam_id=model.kam_id,
    )


def category_to_entity(model: CategoryModel) -> Category:
    return Category(
        id=model.id,
        issue_type=IssueType(model.issue_type),
        l1=model.l1,
        l2=model.l2,
        l3=model.l3,
        l4=model.l4,
        department_type=model.department_type,
        issue_priority_points=model.issue_priority_points,
        is_active=model.is_active,
    )


# ========== Repositories ==========

class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Snapshot columns are only ever written by the guarded UPDATEs in
    ``capture_snapshot`` and ``replace_snapshot``.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, ticket_id: str) -> Optional[TicketModel]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.id == ticket_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        model = await self._get_model(ticket_id)
        return ticket_to_entity(model) if model else None

    async def list(self, filters: Optional[dict] = None, limit: int = 100, offset: int = 0) -> List[Ticket]:
        """List tickets with filters (status, department, vendor_handle, assignee_id)."""
        filters = filters or {}
        stmt = select(TicketModel).execution_options(populate_existing=True)

        if filters.get("status"):
            statuses = filters["status"]
            if not isinstance(statuses, (list, tuple, set)):
                statuses = [statuses]
            stmt = stmt.where(TicketModel.status.in_([_value(s) for s in statuses]))
        for column in ("department", "vendor_handle", "assignee_id"):
            if filters.get(column):
                stmt = stmt.where(getattr(TicketModel, column) == filters[column])

        stmt = stmt.order_by(TicketModel.created_at.desc()).limit(limit).offset(offset)
        result = await self._session.execute(stmt)
        return [ticket_to_entity(model) for model in result.scalars().all()]

    async def list_open(self) -> List[Ticket]:
        return await self.list({"status": OPEN_STATUSES}, limit=10_000)

    async def list_without_snapshot(self) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.snapshot_captured_at.is_(None))
            .order_by(TicketModel.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [ticket_to_entity(model) for model in result.scalars().all()]

    async def _max_issued(self, prefix: str) -> int:
        # Numeric, not lexical: SS100000 sorts before SS99999 as text
        suffix = cast(func.substr(TicketModel.ticket_number, len(prefix) + 1), Integer)
        stmt = select(func.max(suffix)).where(TicketModel.ticket_number.like(f"{prefix}%"))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() or 0

    async def next_sequence(self, prefix: str) -> int:
        """
        Issue the next number for a prefix.

        The counter row is locked by the UPDATE until the request commits.
        The first call for a prefix seeds the counter from existing tickets.
        """
        bump = (
            update(TicketSequenceModel)
            .where(TicketSequenceModel.prefix == prefix)
            .values(last_value=TicketSequenceModel.last_value + 1)
            .returning(TicketSequenceModel.last_value)
            .execution_options(synchronize_session=False)
        )
        issued = (await self._session.execute(bump)).scalar_one_or_none()
        if issued is not None:
            return issued

        issued = await self._max_issued(prefix) + 1
        try:
            async with self._session.begin_nested():
                self._session.add(TicketSequenceModel(prefix=prefix, last_value=issued))
        except IntegrityError:
            # Another request seeded the counter first
            issued = (await self._session.execute(bump)).scalar_one_or_none()
            if issued is None:
                raise RepositoryException(f"Ticket sequence for {prefix} unavailable")
        return issued

    async def count_vendor_tickets(self, vendor_handle: str, since: datetime) -> int:
        stmt = select(func.count(TicketModel.id)).where(
            TicketModel.vendor_handle == vendor_handle,
            TicketModel.created_at >= since,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def count_vendor_category_tickets(self, vendor_handle: str, category_id: str, since: datetime) -> int:
        stmt = select(func.count(TicketModel.id)).where(
            TicketModel.vendor_handle == vendor_handle,
            TicketModel.category_id == category_id,
            TicketModel.created_at >= since,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def create(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            created_by_id=ticket.created_by_id,
            created_at=ticket.created_at,
            **_ticket_column_values(ticket),
        )
        self._session.add(model)
        await self._session.flush()
        return ticket

    async def update(self, ticket: Ticket) -> Ticket:
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket.id)
            .values(**_ticket_column_values(ticket))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise RepositoryException(f"Ticket {ticket.id} not found")
        return ticket

    async def capture_snapshot(self, ticket_id: str, bundle: SnapshotBundle) -> bool:
        stmt = (
            update(TicketModel)
            .where(
                TicketModel.id == ticket_id,
                TicketModel.snapshot_captured_at.is_(None),
            )
            .values(**bundle.to_columns())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            logger.info("Snapshot already captured, leaving it untouched", extra={"ticket_id": ticket_id})
            return False
        return True

    async def replace_snapshot(self, ticket_id: str, bundle: SnapshotBundle, expected_version: int) -> bool:
        stmt = (
            update(TicketModel)
            .where(
                TicketModel.id == ticket_id,
                TicketModel.snapshot_version == expected_version,
            )
            .values(**bundle.to_columns())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            logger.warning(
                "Snapshot version moved, resnapshot not applied",
                extra={"ticket_id": ticket_id, "expected_version": expected_version}
            )
            return False
        return True

    async def update_sla_status(self, ticket_id: str, sla_status: str) -> None:
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket_id)
            .values(sla_status=sla_status)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)


class SQLAlchemyUserRepository(IUserRepository):
    """SQLAlchemy implementation of user repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, user_id: str) -> Optional[User]:
        model = await self._session.get(UserModel, user_id)
        return user_to_entity(model) if model else None

    async def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(UserModel).where(func.lower(UserModel.email) == email.strip().lower())
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return user_to_entity(model) if model else None

    async def list_active(self) -> List[User]:
        stmt = select(UserModel).where(UserModel.is_active.is_(True))
        result = await self._session.execute(stmt)
        return [user_to_entity(model) for model in result.scalars().all()]

    async def list_all(self) -> List[User]:
        result = await self._session.execute(select(UserModel))
        return [user_to_entity(model) for model in result.scalars().all()]

    async def update_manager(self, user_id: str, manager_id: Optional[str]) -> None:
        stmt = (
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(manager_id=manager_id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise RepositoryException(f"User {user_id} not found")


class SQLAlchemyCatalogRepository(ICatalogRepository):
    """Vendor, category, tag and SLA configuration lookups."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_vendor(self, handle: str) -> Optional[Vendor]:
        model = await self._session.get(VendorModel, handle)
        return vendor_to_entity(model) if model else None

    async def get_category(self, category_id: str) -> Optional[Category]:
        model = await self._session.get(CategoryModel, category_id)
        return category_to_entity(model) if model else None

    async def list_tags(self, names: Sequence[str]) -> List[Tag]:
        if not names:
            return []
        stmt = select(TagModel).where(TagModel.name.in_(list(names)))
        result = await self._session.execute(stmt)
        return [
            Tag(id=model.id, name=model.name, color=model.color, department_type=model.department_type)
            for model in result.scalars().all()
        ]

    async def list_sla_configurations(self, category_id: str) -> List[SLAConfiguration]:
        stmt = select(SLAConfigurationModel).where(SLAConfigurationModel.category_id == category_id)
        result = await self._session.execute(stmt)
        return [
            SLAConfiguration(
                id=model.id,
                category_id=model.category_id,
                department=model.department,
                response_hours=model.response_hours,
                resolution_hours=model.resolution_hours,
                use_business_hours=model.use_business_hours,
                is_active=model.is_active,
            )
            for model in result.scalars().all()
        ]


class SQLAlchemyCommentRepository(ICommentRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, comment: Comment) -> Comment:
        self._session.add(CommentModel(
            id=comment.id,
            ticket_id=comment.ticket_id,
            body=comment.body,
            author_id=comment.author_id,
            created_at=comment.created_at,
        ))
        await self._session.flush()
        return comment

    async def list_for_ticket(self, ticket_id: str) -> List[Comment]:
        stmt = select(CommentModel).where(CommentModel.ticket_id == ticket_id).order_by(CommentModel.created_at)
        result = await self._session.execute(stmt)
        return [
            Comment(
                id=model.id,
                ticket_id=model.ticket_id,
                body=model.body,
                author_id=model.author_id,
                created_at=_aware(model.created_at),
            )
            for model in result.scalars().all()
        ]


class SQLAlchemyNotificationRepository(INotificationRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create_many(self, notifications: Sequence[Notification]) -> None:
        if not notifications:
            return
        self._session.add_all([
            NotificationModel(
                id=notification.id,
                user_id=notification.user_id,
                type=notification.type.value,
                title=notification.title,
                message=notification.message,
                ticket_id=notification.ticket_id,
                comment_id=notification.comment_id,
                actor_id=notification.actor_id,
                metadata_=notification.metadata,
                is_read=notification.is_read,
                created_at=notification.created_at,
            )
            for notification in notifications
        ])
        await self._session.flush()
