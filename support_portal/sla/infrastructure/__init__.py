"""
SLA Infrastructure Layer
========================

Background scheduling for the SLA sweep.
"""

from support_portal.sla.infrastructure.external import SLAScheduler

__all__ = ["SLAScheduler"]
