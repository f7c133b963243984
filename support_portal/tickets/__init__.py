"""
Tickets Module
==============

Bounded context for the ticket lifecycle.

Responsibilities:
- Create tickets with priority score, SLA targets and a write-once snapshot
- Department-aware partial updates
- Comments with @mentions and in-app notifications
- Explicit resnapshot and snapshot backfill
"""
