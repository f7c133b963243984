"""
Ticket Domain Layer
===================

Tickets, catalog records and the policy configuration value object.
"""

from support_portal.tickets.domain.entities import (
    Category,
    Comment,
    Tag,
    Ticket,
    Vendor,
    category_id_for_path,
    format_ticket_number,
    normalize_category_path,
    parse_category_path,
    ticket_number_prefix,
)
from support_portal.tickets.domain.value_objects import PolicyConfig

__all__ = [
    "Category",
    "Comment",
    "PolicyConfig",
    "Tag",
    "Ticket",
    "Vendor",
    "category_id_for_path",
    "format_ticket_number",
    "normalize_category_path",
    "parse_category_path",
    "ticket_number_prefix",
]
