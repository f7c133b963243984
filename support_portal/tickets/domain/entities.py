"""
Ticket Domain Entities
======================

Pure Python domain entities for the ticketing portal.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import NAMESPACE_URL, uuid4, uuid5

from support_portal.config import (
    OPEN_STATUSES,
    GmvTier,
    IssueType,
    TicketStatus,
)
from support_portal.core import SnapshotAlreadyCapturedException, ValidationException

CATEGORY_SEPARATOR = ">"
CATEGORY_NAMESPACE = uuid5(NAMESPACE_URL, "support-portal/categories")

SELLER_SUPPORT_PREFIX = "SS"
CUSTOMER_SUPPORT_PREFIX = "CS"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_ticket_number(sequence: int, is_seller_ticket: bool) -> str:
    """``SS00001`` for seller-support tickets, ``CS00001`` for customer-support."""
    if sequence < 1:
        raise ValidationException("ticket sequence must start at 1", {"sequence": sequence})
    prefix = SELLER_SUPPORT_PREFIX if is_seller_ticket else CUSTOMER_SUPPORT_PREFIX
    return f"{prefix}{sequence:05d}"


def ticket_number_prefix(vendor_handle: Optional[str]) -> str:
    return SELLER_SUPPORT_PREFIX if vendor_handle else CUSTOMER_SUPPORT_PREFIX


# ========== Catalog ==========

@dataclass
class Vendor:
    """
    Seller account referenced by tickets.

    Identity is the handle; other attributes are refreshed by external sync.
    """
    handle: str
    name: str
    gmv_90_day: Optional[float] = None
    gmv_tier: Optional[GmvTier] = None
    region: Optional[str] = None
    zone: Optional[str] = None
    country: Optional[str] = None
    kam_id: Optional[str] = None


def normalize_category_path(path: str) -> str:
    """Trim, lower-case and single-space each segment."""
    segments = [re.sub(r"\s+", " ", part).strip().lower() for part in path.split(CATEGORY_SEPARATOR)]
    return " > ".join(segments)


def category_id_for_path(path: str) -> str:
    return str(uuid5(CATEGORY_NAMESPACE, normalize_category_path(path)))


@dataclass
class Category:
    """Node of the issue category tree: issue type > L1 > L2 > L3 > optional L4."""
    id: str
    issue_type: IssueType
    l1: str
    l2: str
    l3: str
    l4: Optional[str] = None
    department_type: Optional[str] = None
    issue_priority_points: int = 0
    is_active: bool = True

    @property
    def path(self) -> str:
        parts = [self.issue_type.value, self.l1, self.l2, self.l3]
        if self.l4:
            parts.append(self.l4)
        return " > ".join(parts)


def parse_category_path(
    path: str,
    issue_type_points: Optional[Dict[IssueType, int]] = None,
    department_type: Optional[str] = None,
) -> Category:
    """
    Parse ``"Complaint > Finance > Payment > Payout"`` into a Category.

    Raises:
        ValidationException: unknown issue type or wrong number of levels
    """
    segments = [re.sub(r"\s+", " ", part).strip() for part in path.split(CATEGORY_SEPARATOR)]
    if len(segments) not in (4, 5) or not all(segments):
        raise ValidationException(
            "Category path must be 'IssueType > L1 > L2 > L3' with an optional L4",
            {"path": path}
        )

    try:
        issue_type = IssueType(segments[0].title())
    except ValueError as e:
        raise ValidationException(f"Unknown issue type: {segments[0]}", {"path": path}) from e

    points = (issue_type_points or {}).get(issue_type, 0)
    return Category(
        id=category_id_for_path(path),
        issue_type=issue_type,
        l1=segments[1],
        l2=segments[2],
        l3=segments[3],
        l4=segments[4] if len(segments) == 5 else None,
        department_type=department_type,
        issue_priority_points=points,
    )


@dataclass
class Tag:
    id: str
    name: str
    color: Optional[str] = None
    department_type: Optional[str] = None


# ========== Ticket ==========

@dataclass
class Ticket:
    """
    Support ticket.

    The snapshot fields are write-once: ``capture_snapshot`` refuses to
    overwrite them, only ``resnapshot`` may replace them.
    """

    id: str
    ticket_number: str
    subject: str
    department: str
    description: Optional[str] = None
    vendor_handle: Optional[str] = None
    owner_team: Optional[str] = None
    category_id: Optional[str] = None
    issue_type: Optional[IssueType] = None
    status: TicketStatus = TicketStatus.NEW
    is_escalated: bool = False
    tags: List[str] = field(default_factory=list)
    customer: Optional[str] = None
    order_ids: List[str] = field(default_factory=list)
    attachments: List[str] = field(default_factory=list)

    # Priority
    priority_score: int = 0
    priority_tier: Optional[str] = None
    priority_badge: Optional[str] = None
    priority_breakdown: Dict[str, Any] = field(default_factory=dict)

    # SLA
    sla_response_target: Optional[datetime] = None
    sla_resolve_target: Optional[datetime] = None
    sla_status: Optional[str] = None
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    # People
    assignee_id: Optional[str] = None
    created_by_id: Optional[str] = None

    slack_thread_ts: Optional[str] = None
    slack_channel_id: Optional[str] = None

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    # Snapshot
    category_snapshot: Optional[Dict[str, Any]] = None
    sla_snapshot: Optional[Dict[str, Any]] = None
    priority_snapshot: Optional[Dict[str, Any]] = None
    tags_snapshot: Optional[List[Dict[str, Any]]] = None
    snapshot_version: int = 0
    snapshot_captured_at: Optional[datetime] = None

    @classmethod
    def new_id(cls) -> str:
        return str(uuid4())

    @property
    def is_seller_ticket(self) -> bool:
        return bool(self.vendor_handle)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def has_snapshot(self) -> bool:
        return self.snapshot_captured_at is not None

    def _apply_snapshot(self, bundle) -> None:
        columns = bundle.to_columns()
        for name, value in columns.items():
            setattr(self, name, value)

    def capture_snapshot(self, bundle) -> None:
        """
        Store a snapshot for the first time.

        Raises:
            SnapshotAlreadyCapturedException: if a snapshot is already present
        """
        if self.has_snapshot:
            raise SnapshotAlreadyCapturedException(self.id)
        self._apply_snapshot(bundle)

    def resnapshot(self, bundle) -> None:
        """Explicitly replace the snapshot; the bundle carries the bumped version."""
        if bundle.version <= self.snapshot_version:
            raise ValidationException(
                "Resnapshot must increase the snapshot version",
                {"current": self.snapshot_version, "proposed": bundle.version}
            )
        self._apply_snapshot(bundle)

    def change_status(self, status: TicketStatus, at: Optional[datetime] = None) -> None:
        """Only enum membership is checked; the transition graph is not enforced."""
        at = at or _utcnow()
        self.status = status
        if status in (TicketStatus.SOLVED, TicketStatus.CLOSED) and self.resolved_at is None:
            self.resolved_at = at
        elif status not in (TicketStatus.SOLVED, TicketStatus.CLOSED):
            self.resolved_at = None
        self.updated_at = at

    def mark_first_response(self, at: Optional[datetime] = None) -> None:
        if self.first_response_at is None:
            self.first_response_at = at or _utcnow()


@dataclass
class Comment:
    ticket_id: str
    body: str
    author_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if not self.body or not self.body.strip():
            raise ValidationException("Comment body cannot be empty")
