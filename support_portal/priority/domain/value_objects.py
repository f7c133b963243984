"""
Priority Value Objects
======================

Point tables and the scorer that turns vendor/category/history facts into a
numeric priority score, a tier and a badge.

Score = GMV-tier points + issue points + ticket-volume points + repeat-issue
points. All point values come from ``PriorityPolicy`` so deployments tune
them without code changes; only the shape of the formula is fixed here.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from support_portal.config import (
    GMV_TIER_ORDER,
    TIER_BADGES,
    GmvTier,
    IssueType,
    PriorityBadge,
    PriorityTier,
)


class VolumeBucket(BaseModel):
    """Points awarded once a vendor has at least ``min_tickets`` recent tickets."""
    model_config = ConfigDict(frozen=True)

    min_tickets: int = Field(ge=0)
    points: int = Field(ge=0)


class TierThresholds(BaseModel):
    """Lowest score that reaches each tier; anything below ``medium`` is Low."""
    model_config = ConfigDict(frozen=True)

    critical: int = Field(default=70, ge=0)
    high: int = Field(default=50, ge=0)
    medium: int = Field(default=30, ge=0)

    @model_validator(mode="after")
    def check_descending(self) -> "TierThresholds":
        if not self.critical > self.high > self.medium:
            raise ValueError("tier thresholds must satisfy critical > high > medium")
        return self


class PriorityPolicy(BaseModel):
    """
    Priority point tables.

    This is a value object - immutable and defined by its attributes.
    """
    model_config = ConfigDict(frozen=True)

    gmv_tier_points: Dict[GmvTier, int] = Field(
        default_factory=lambda: {
            GmvTier.S: 5,
            GmvTier.BRONZE: 8,
            GmvTier.M: 10,
            GmvTier.SILVER: 12,
            GmvTier.L: 15,
            GmvTier.XL: 20,
            GmvTier.GOLD: 25,
            GmvTier.PLATINUM: 30,
        },
        description="Points by vendor GMV tier"
    )
    gmv_tier_thresholds: Dict[GmvTier, int] = Field(
        default_factory=lambda: {
            GmvTier.S: 0,
            GmvTier.BRONZE: 1_000,
            GmvTier.M: 5_000,
            GmvTier.SILVER: 10_000,
            GmvTier.L: 25_000,
            GmvTier.XL: 50_000,
            GmvTier.GOLD: 100_000,
            GmvTier.PLATINUM: 250_000,
        },
        description="Minimum 90-day GMV for each tier"
    )
    issue_type_points: Dict[IssueType, int] = Field(
        default_factory=lambda: {
            IssueType.COMPLAINT: 30,
            IssueType.REQUEST: 20,
            IssueType.INFORMATION: 10,
        },
        description="Issue points used when the category carries none"
    )
    volume_buckets: List[VolumeBucket] = Field(
        default_factory=lambda: [
            VolumeBucket(min_tickets=0, points=0),
            VolumeBucket(min_tickets=3, points=5),
            VolumeBucket(min_tickets=6, points=10),
            VolumeBucket(min_tickets=11, points=15),
            VolumeBucket(min_tickets=21, points=20),
        ],
        description="Vendor ticket-volume buckets (recent window)"
    )
    repeat_issue_points: int = Field(default=5, ge=0, description="Points per prior ticket on the same category")
    repeat_issue_cap: int = Field(default=15, ge=0, description="Ceiling for repeat-issue points")
    tier_thresholds: TierThresholds = Field(default_factory=TierThresholds)

    @field_validator("gmv_tier_points", "issue_type_points")
    @classmethod
    def validate_non_negative(cls, v: Dict[Any, int]) -> Dict[Any, int]:
        for key, points in v.items():
            if points < 0:
                raise ValueError(f"points for {key} must be non-negative")
        return v

    @field_validator("gmv_tier_points")
    @classmethod
    def validate_gmv_monotonic(cls, v: Dict[GmvTier, int]) -> Dict[GmvTier, int]:
        """Higher GMV tiers may never score below lower ones."""
        configured = [v[tier] for tier in GMV_TIER_ORDER if tier in v]
        if any(later < earlier for earlier, later in zip(configured, configured[1:])):
            raise ValueError("gmv_tier_points must be non-decreasing by tier rank")
        return v

    @field_validator("volume_buckets")
    @classmethod
    def validate_volume_buckets(cls, v: List[VolumeBucket]) -> List[VolumeBucket]:
        ordered = sorted(v, key=lambda bucket: bucket.min_tickets)
        points = [bucket.points for bucket in ordered]
        if any(later < earlier for earlier, later in zip(points, points[1:])):
            raise ValueError("volume bucket points must grow with ticket count")
        return ordered

    def points_for_gmv_tier(self, tier: Optional[str]) -> int:
        if not tier:
            return 0
        try:
            return self.gmv_tier_points.get(GmvTier(tier), 0)
        except ValueError:
            return 0

    def points_for_volume(self, ticket_count: Optional[int]) -> int:
        count = max(ticket_count or 0, 0)
        points = 0
        for bucket in self.volume_buckets:
            if count >= bucket.min_tickets:
                points = bucket.points
        return points

    def points_for_repeat_issues(self, repeat_count: Optional[int]) -> int:
        count = max(repeat_count or 0, 0)
        return min(count * self.repeat_issue_points, self.repeat_issue_cap)

    def points_for_issue_type(self, issue_type: Optional[str]) -> int:
        if not issue_type:
            return 0
        try:
            return self.issue_type_points.get(IssueType(issue_type), 0)
        except ValueError:
            return 0

    def tier_for_score(self, score: int) -> PriorityTier:
        thresholds = self.tier_thresholds
        if score >= thresholds.critical:
            return PriorityTier.CRITICAL
        if score >= thresholds.high:
            return PriorityTier.HIGH
        if score >= thresholds.medium:
            return PriorityTier.MEDIUM
        return PriorityTier.LOW

    def derive_gmv_tier(self, gmv_90_day: Optional[float]) -> Optional[GmvTier]:
        """Highest tier whose threshold the 90-day GMV reaches."""
        if gmv_90_day is None:
            return None
        derived = None
        for tier in GMV_TIER_ORDER:
            threshold = self.gmv_tier_thresholds.get(tier)
            if threshold is not None and gmv_90_day >= threshold:
                derived = tier
        return derived


@dataclass(frozen=True)
class VendorTicketHistory:
    """
    Recent ticket facts for a vendor.

    Computed by the caller over its own time window (e.g. last 90 days).
    """
    ticket_count: int = 0
    repeat_issue_count: int = 0


@dataclass(frozen=True)
class PriorityBreakdown:
    vendor_ticket_volume: int
    vendor_gmv_tier: Optional[str]
    issue_priority_points: int
    gmv_points: int
    volume_points: int
    ticket_history_points: int
    issue_points: int


@dataclass(frozen=True)
class PriorityResult:
    """Outcome of scoring one ticket."""
    score: int
    tier: PriorityTier
    badge: PriorityBadge
    breakdown: PriorityBreakdown

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "tier": self.tier.value,
            "badge": self.badge.value,
            "breakdown": asdict(self.breakdown),
        }


class PriorityScorer:
    """
    Pure priority scoring.

    Missing inputs contribute zero points; the scorer never raises and never
    reads the clock.
    """

    def __init__(self, policy: Optional[PriorityPolicy] = None):
        self._policy = policy or PriorityPolicy()

    @property
    def policy(self) -> PriorityPolicy:
        return self._policy

    def score(
        self,
        ticket: Any = None,
        vendor: Any = None,
        issue_category: Any = None,
        vendor_history: Optional[VendorTicketHistory] = None,
    ) -> PriorityResult:
        """
        Score a ticket.

        Args:
            ticket: Ticket or request; only ``issue_type`` is read, as a
                fallback when no category is known
            vendor: Vendor record exposing ``gmv_tier``
            issue_category: Category record exposing ``issue_priority_points``
            vendor_history: Recent ticket facts for the vendor

        Returns:
            PriorityResult with score, tier, badge and the per-factor breakdown
        """
        policy = self._policy
        history = vendor_history or VendorTicketHistory()

        gmv_tier = getattr(vendor, "gmv_tier", None)
        if isinstance(gmv_tier, GmvTier):
            gmv_tier = gmv_tier.value
        gmv_points = policy.points_for_gmv_tier(gmv_tier)

        category_points = getattr(issue_category, "issue_priority_points", None)
        if category_points is not None and category_points >= 0:
            issue_points = int(category_points)
        else:
            issue_type = getattr(issue_category, "issue_type", None) or getattr(ticket, "issue_type", None)
            if isinstance(issue_type, IssueType):
                issue_type = issue_type.value
            issue_points = policy.points_for_issue_type(issue_type)

        volume_points = policy.points_for_volume(history.ticket_count)
        history_points = policy.points_for_repeat_issues(history.repeat_issue_count)

        total = gmv_points + issue_points + volume_points + history_points
        tier = policy.tier_for_score(total)

        return PriorityResult(
            score=total,
            tier=tier,
            badge=TIER_BADGES[tier],
            breakdown=PriorityBreakdown(
                vendor_ticket_volume=max(history.ticket_count or 0, 0),
                vendor_gmv_tier=gmv_tier,
                issue_priority_points=int(category_points or 0),
                gmv_points=gmv_points,
                volume_points=volume_points,
                ticket_history_points=history_points,
                issue_points=issue_points,
            ),
        )
