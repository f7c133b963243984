"""
Access Module
=============

Bounded context for authorization.

Responsibilities:
- Role → permission lookup with per-user custom permission overrides
- Role membership checks
- Department scoping for ticket visibility and updates
- Org hierarchy (manager tree) with cycle detection
"""
