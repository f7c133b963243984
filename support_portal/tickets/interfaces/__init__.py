"""
Ticket Interfaces Layer
=======================

FastAPI routers.
"""

from support_portal.tickets.interfaces.controllers import router as tickets_router

__all__ = ["tickets_router"]
