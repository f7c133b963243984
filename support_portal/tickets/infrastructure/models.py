"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the ticket portal.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from support_portal.config import TicketStatus
from support_portal.infrastructure.database import Base


def _uuid() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(Base):
    """Maps to the 'users' table."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    additional_roles: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    custom_permissions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sub_department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    # Weak back-reference; the tree is validated in the domain layer
    manager_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    slack_user_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class VendorModel(Base):
    """Maps to the 'vendors' table."""
    __tablename__ = "vendors"

    handle: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    gmv_90_day: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    gmv_tier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    zone: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    kam_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)


class CategoryModel(Base):
    """Maps to the 'categories' table."""
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    issue_type: Mapped[str] = mapped_column(String(20), nullable=False)
    l1: Mapped[str] = mapped_column(String(255), nullable=False)
    l2: Mapped[str] = mapped_column(String(255), nullable=False)
    l3: Mapped[str] = mapped_column(String(255), nullable=False)
    l4: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    department_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    issue_priority_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TagModel(Base):
    """Maps to the 'tags' table."""
    __tablename__ = "tags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    department_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class SLAConfigurationModel(Base):
    """Maps to the 'sla_configurations' table."""
    __tablename__ = "sla_configurations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    category_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    department: Mapped[str] = mapped_column(String(100), nullable=False, default="All")
    response_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    resolution_hours: Mapped[float] = mapped_column(Float, nullable=False)
    use_business_hours: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table. Snapshot columns are written only through
    the guarded snapshot updates in the repository.
    """
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ticket_number: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)

    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    department: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    owner_team: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    vendor_handle: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    category_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    issue_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketStatus.NEW.value, index=True)
    is_escalated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    customer: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    order_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Priority
    priority_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    priority_tier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    priority_badge: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    priority_breakdown: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # SLA
    sla_response_target: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_resolve_target: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # People
    assignee_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    slack_thread_ts: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    slack_channel_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Snapshot
    category_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    sla_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    priority_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    tags_snapshot: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    snapshot_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    snapshot_captured_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class CommentModel(Base):
    """Maps to the 'comments' table."""
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ticket_id: Mapped[str] = mapped_column(String(36), ForeignKey("tickets.id"), nullable=False, index=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class NotificationModel(Base):
    """Maps to the 'notifications' table."""
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    ticket_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    comment_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TicketSequenceModel(Base):
    """
    Last issued ticket number per prefix (``SS``/``CS``).

    Incremented with a single ``UPDATE ... RETURNING`` so concurrent
    creates serialise on the row instead of racing on ``MAX()``.
    """
    __tablename__ = "ticket_sequences"

    prefix: Mapped[str] = mapped_column(String(10), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
