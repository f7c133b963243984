"""
Ticket Application Layer
========================

Application layer for the ticket module.

Contains:
- Services: Orchestrate the policy objects and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from support_portal.tickets.application.dto import (
    AccessSummaryResponse,
    BackfillResponse,
    CommentCreateRequest,
    CommentResponse,
    HealthResponse,
    ManagerAssignRequest,
    ManagerChainResponse,
    RoutingPreviewResponse,
    TicketCreateRequest,
    TicketListResponse,
    TicketResponse,
    TicketUpdateRequest,
)
from support_portal.tickets.application.services import (
    ICatalogRepository,
    ICommentRepository,
    INotificationRepository,
    IPolicyProvider,
    ITicketRepository,
    IUserRepository,
    TicketService,
)

__all__ = [
    # DTOs
    "AccessSummaryResponse",
    "BackfillResponse",
    "CommentCreateRequest",
    "CommentResponse",
    "HealthResponse",
    "ManagerAssignRequest",
    "ManagerChainResponse",
    "RoutingPreviewResponse",
    "TicketCreateRequest",
    "TicketListResponse",
    "TicketResponse",
    "TicketUpdateRequest",
    # Services
    "TicketService",
    # Repository Interfaces
    "ICatalogRepository",
    "ICommentRepository",
    "INotificationRepository",
    "IPolicyProvider",
    "ITicketRepository",
    "IUserRepository",
]
