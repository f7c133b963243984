"""
Routing Module
==============

Bounded context for notification fan-out.

Responsibilities:
- Decide Slack channels per ticket event (department, urgent, escalation,
  SLA breach, fallback)
- Plan in-app notifications per ticket event
- Deliver Slack messages through the Web API
"""
