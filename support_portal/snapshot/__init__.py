"""
Snapshot Module
===============

Bounded context for freezing catalog state onto tickets.

Responsibilities:
- Build category/SLA/priority/tag snapshots from already-fetched records
- Degrade to "Unknown" placeholders when a category no longer exists
"""
