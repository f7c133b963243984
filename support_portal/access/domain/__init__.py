"""
Access Domain Layer
===================

Pure Python authorization rules. No infrastructure dependencies.
"""

from support_portal.access.domain.entities import User
from support_portal.access.domain.org import OrgHierarchy
from support_portal.access.domain.value_objects import (
    DEFAULT_ROLE_PERMISSIONS,
    LIMITED_UPDATE_FIELDS,
    RESTRICTED_UPDATE_FIELDS,
    AccessEvaluator,
    PermissionTable,
)

__all__ = [
    "User",
    "OrgHierarchy",
    "DEFAULT_ROLE_PERMISSIONS",
    "LIMITED_UPDATE_FIELDS",
    "RESTRICTED_UPDATE_FIELDS",
    "AccessEvaluator",
    "PermissionTable",
]
