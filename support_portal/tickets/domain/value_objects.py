"""
Ticket Value Objects
====================

Policy configuration shared by every ticket computation.

One ``PolicyConfig`` instance is an immutable snapshot of the policy file.
Reloading swaps the whole object, so a request that took a reference keeps
a consistent view for its whole lifetime.
"""

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from support_portal.access.domain.value_objects import (
    DEFAULT_ROLE_PERMISSIONS,
    AccessEvaluator,
    PermissionTable,
)
from support_portal.priority.domain.value_objects import PriorityPolicy, PriorityScorer
from support_portal.sla.domain.value_objects import BusinessCalendar, SLACalculator, SLAPolicy


class PolicyConfig(BaseModel):
    """
    Complete policy configuration.

    This is a value object - immutable and defined by its attributes.
    """
    model_config = ConfigDict(frozen=True)

    role_permissions: Dict[str, List[str]] = Field(
        default_factory=lambda: {role: list(perms) for role, perms in DEFAULT_ROLE_PERMISSIONS.items()},
        description="Role name -> permission strings"
    )
    priority: PriorityPolicy = Field(default_factory=PriorityPolicy)
    business_calendar: BusinessCalendar = Field(default_factory=BusinessCalendar)
    sla: SLAPolicy = Field(default_factory=SLAPolicy)

    def permission_table(self) -> PermissionTable:
        return PermissionTable(role_permissions=self.role_permissions)

    def access_evaluator(self) -> AccessEvaluator:
        return AccessEvaluator(self.permission_table())

    def priority_scorer(self) -> PriorityScorer:
        return PriorityScorer(self.priority)

    def sla_calculator(self) -> SLACalculator:
        return SLACalculator(self.business_calendar, self.sla)
