"""
Priority Domain Layer
=====================

Value objects and the stateless scorer.
"""

from support_portal.priority.domain.value_objects import (
    PriorityBreakdown,
    PriorityPolicy,
    PriorityResult,
    PriorityScorer,
    TierThresholds,
    VendorTicketHistory,
    VolumeBucket,
)

__all__ = [
    "PriorityBreakdown",
    "PriorityPolicy",
    "PriorityResult",
    "PriorityScorer",
    "TierThresholds",
    "VendorTicketHistory",
    "VolumeBucket",
]
