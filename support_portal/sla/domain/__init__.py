"""
SLA Domain Layer
================

Calendar, configuration rows and the stateless SLA calculator.
"""

from support_portal.sla.domain.value_objects import (
    BusinessCalendar,
    SLACalculator,
    SLAConfiguration,
    SLAPolicy,
    SLATargets,
)

__all__ = [
    "BusinessCalendar",
    "SLACalculator",
    "SLAConfiguration",
    "SLAPolicy",
    "SLATargets",
]
