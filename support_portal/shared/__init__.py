"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (access, priority,
sla, routing, snapshot, tickets).

DO NOT add business logic from a bounded context to the shared kernel.
"""
