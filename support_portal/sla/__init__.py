"""
SLA Module
==========

Bounded context for Service Level Agreement tracking.

Responsibilities:
- Select the SLA configuration row for a ticket's category and department
- Compute response/resolution deadlines (wall clock or business hours)
- Evaluate SLA state (on_track, at_risk, breached, met)
- Periodic sweep of open tickets with breach notifications
"""
