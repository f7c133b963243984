"""
Snapshot Value Objects
======================

Point-in-time copies of the catalog data a ticket references.

A ticket keeps its category, SLA, priority and tag state as they were when
the snapshot was captured, so later catalog edits or deletions never
change how historical tickets render or report.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from support_portal.config import PriorityBadge, PriorityTier
from support_portal.core import ValidationException

UNKNOWN = "Unknown"
UNKNOWN_PATH = "Unknown > Unknown > Unknown"
DEFAULT_RESOLUTION_HOURS = 24


class CategorySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: Optional[str] = None
    issue_type: Optional[str] = None
    l1: str
    l2: str
    l3: str
    l4: Optional[str] = None
    path: str
    department_type: Optional[str] = None
    issue_priority_points: int = 0


class SLASnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    configuration_id: Optional[str] = None
    response_time_hours: Optional[float] = None
    resolution_time_hours: float
    use_business_hours: bool = False
    response_target: Optional[datetime] = None
    resolve_target: Optional[datetime] = None


class PrioritySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    configuration_id: Optional[str] = None
    score: int = 0
    tier: str = PriorityTier.LOW.value
    badge: str = PriorityBadge.P3.value
    breakdown: Dict[str, Any] = Field(default_factory=dict)


class TagSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: Optional[str] = None
    department_type: Optional[str] = None
    applied_at: Optional[datetime] = None


class SnapshotBundle(BaseModel):
    """The four snapshot parts plus version and capture time."""
    model_config = ConfigDict(frozen=True)

    category: CategorySnapshot
    sla: SLASnapshot
    priority: PrioritySnapshot
    tags: List[TagSnapshot] = Field(default_factory=list)
    version: int = Field(default=1, ge=1)
    captured_at: datetime

    def to_columns(self) -> Dict[str, Any]:
        """JSON-ready values keyed by ticket column name."""
        return {
            "category_snapshot": self.category.model_dump(mode="json"),
            "sla_snapshot": self.sla.model_dump(mode="json"),
            "priority_snapshot": self.priority.model_dump(mode="json"),
            "tags_snapshot": [tag.model_dump(mode="json") for tag in self.tags],
            "snapshot_version": self.version,
            "snapshot_captured_at": self.captured_at,
        }


def _value(obj: Any) -> Any:
    return getattr(obj, "value", obj)


def _hours_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 3600


class SnapshotBuilder:
    """
    Pure transform from already-fetched records to a ``SnapshotBundle``.

    Never performs I/O and never raises for missing catalog rows.
    """

    def category_snapshot(self, ticket: Any, category: Any) -> CategorySnapshot:
        if category is None:
            return CategorySnapshot(
                category_id=getattr(ticket, "category_id", None),
                issue_type=_value(getattr(ticket, "issue_type", None)),
                l1=UNKNOWN,
                l2=UNKNOWN,
                l3=UNKNOWN,
                l4=None,
                path=UNKNOWN_PATH,
                issue_priority_points=0,
            )
        return CategorySnapshot(
            category_id=category.id,
            issue_type=_value(getattr(ticket, "issue_type", None) or category.issue_type),
            l1=category.l1,
            l2=category.l2,
            l3=category.l3,
            l4=category.l4,
            path=category.path,
            department_type=getattr(category, "department_type", None),
            issue_priority_points=category.issue_priority_points or 0,
        )

    def sla_snapshot(self, ticket: Any, sla_config: Any) -> SLASnapshot:
        created_at = getattr(ticket, "created_at", None)
        response_target = getattr(ticket, "sla_response_target", None)
        resolve_target = getattr(ticket, "sla_resolve_target", None)

        if sla_config is not None:
            response_hours = sla_config.response_hours
            resolution_hours = sla_config.resolution_hours
        else:
            # Recover the window from the stored targets
            response_hours = _hours_between(created_at, response_target)
            resolution_hours = _hours_between(created_at, resolve_target)
            if resolution_hours is None:
                resolution_hours = DEFAULT_RESOLUTION_HOURS

        return SLASnapshot(
            configuration_id=getattr(sla_config, "id", None),
            response_time_hours=response_hours,
            resolution_time_hours=resolution_hours,
            use_business_hours=bool(getattr(sla_config, "use_business_hours", False)),
            response_target=response_target,
            resolve_target=resolve_target,
        )

    def priority_snapshot(self, ticket: Any, priority_result: Any) -> PrioritySnapshot:
        if priority_result is not None:
            return PrioritySnapshot(**priority_result.to_dict())
        return PrioritySnapshot(
            score=getattr(ticket, "priority_score", None) or 0,
            tier=_value(getattr(ticket, "priority_tier", None)) or PriorityTier.LOW.value,
            badge=_value(getattr(ticket, "priority_badge", None)) or PriorityBadge.P3.value,
            breakdown=getattr(ticket, "priority_breakdown", None) or {},
        )

    def tag_snapshots(self, ticket: Any, tags: Iterable[Any], applied_at: Optional[datetime]) -> List[TagSnapshot]:
        by_name = {tag.name: tag for tag in tags or ()}
        snapshots = []
        for name in getattr(ticket, "tags", None) or []:
            tag = by_name.get(name)
            snapshots.append(TagSnapshot(
                id=tag.id if tag else f"unknown-{name}",
                name=name,
                color=getattr(tag, "color", None),
                department_type=getattr(tag, "department_type", None),
                applied_at=applied_at,
            ))
        return snapshots

    def build_snapshot(
        self,
        ticket: Any,
        category: Any = None,
        sla_config: Any = None,
        priority_result: Any = None,
        tags: Iterable[Any] = (),
        captured_at: Optional[datetime] = None,
        version: int = 1,
    ) -> SnapshotBundle:
        """
        Freeze category, SLA, priority and tag state for a ticket.

        ``captured_at`` defaults to the ticket's creation time, so the same
        inputs always produce the same bundle.
        """
        if ticket is None:
            raise ValidationException("ticket is required to build a snapshot")

        captured = captured_at or getattr(ticket, "created_at", None)
        return SnapshotBundle(
            category=self.category_snapshot(ticket, category),
            sla=self.sla_snapshot(ticket, sla_config),
            priority=self.priority_snapshot(ticket, priority_result),
            tags=self.tag_snapshots(ticket, tags, getattr(ticket, "created_at", None) or captured),
            version=version,
            captured_at=captured,
        )
