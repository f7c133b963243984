"""
Ticket Infrastructure Layer
===========================

Contains:
- SQLAlchemy models and repositories
- YAML policy loader with hot reload
"""

from support_portal.tickets.infrastructure.external import PolicyConfigManager
from support_portal.tickets.infrastructure.repositories import (
    SQLAlchemyCatalogRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserRepository,
)

__all__ = [
    "PolicyConfigManager",
    "SQLAlchemyCatalogRepository",
    "SQLAlchemyCommentRepository",
    "SQLAlchemyNotificationRepository",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyUserRepository",
]
