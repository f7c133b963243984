"""
Snapshot Domain Layer
=====================

Snapshot value objects and the pure builder.
"""

from support_portal.snapshot.domain.value_objects import (
    CategorySnapshot,
    PrioritySnapshot,
    SLASnapshot,
    SnapshotBuilder,
    SnapshotBundle,
    TagSnapshot,
)

__all__ = [
    "CategorySnapshot",
    "PrioritySnapshot",
    "SLASnapshot",
    "SnapshotBuilder",
    "SnapshotBundle",
    "TagSnapshot",
]
