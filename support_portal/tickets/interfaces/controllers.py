"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for tickets, comments, routing preview and access summary.

Controllers are thin - they delegate to application services. The caller
is identified by the ``X-User-Email`` header, resolved by the service.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from support_portal.access.domain.entities import User
from support_portal.config import TicketStatus, settings
from support_portal.core import AccessDeniedException
from support_portal.infrastructure.database import get_session
from support_portal.routing.domain.value_objects import (
    ChannelDirectory,
    NotificationContext,
    NotificationRouter,
)
from support_portal.shared.infrastructure.logging import get_logger
from support_portal.tickets.application import (
    AccessSummaryResponse,
    BackfillResponse,
    CommentCreateRequest,
    CommentResponse,
    ManagerAssignRequest,
    ManagerChainResponse,
    RoutingPreviewResponse,
    TicketCreateRequest,
    TicketListResponse,
    TicketResponse,
    TicketService,
    TicketUpdateRequest,
)
from support_portal.tickets.infrastructure import (
    PolicyConfigManager,
    SQLAlchemyCatalogRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserRepository,
)

logger = get_logger(__name__)

router = APIRouter(tags=["Tickets"])

USER_HEADER = "X-User-Email"


# ========== Dependencies ==========

def get_policy_provider(request: Request) -> PolicyConfigManager:
    manager = getattr(request.app.state, "policy_manager", None)
    if manager is None:
        manager = PolicyConfigManager()
        manager.load(settings.policy_config_path)
        request.app.state.policy_manager = manager
    return manager


def get_notification_router(request: Request) -> NotificationRouter:
    notification_router = getattr(request.app.state, "notification_router", None)
    if notification_router is None:
        notification_router = NotificationRouter(ChannelDirectory.from_env())
        request.app.state.notification_router = notification_router
    return notification_router


async def get_ticket_service(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> TicketService:
    """Get ticket service instance bound to the request's session."""
    return TicketService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        user_repository=SQLAlchemyUserRepository(session),
        catalog_repository=SQLAlchemyCatalogRepository(session),
        comment_repository=SQLAlchemyCommentRepository(session),
        notification_repository=SQLAlchemyNotificationRepository(session),
        policy_provider=get_policy_provider(request),
        notifier=getattr(request.app.state, "slack_notifier", None),
        commit=session.commit,
    )


async def get_current_user(
    x_user_email: Optional[str] = Header(None, alias=USER_HEADER),
    service: TicketService = Depends(get_ticket_service),
) -> User:
    """Resolve the calling staff user; 403 when missing or unknown."""
    if not x_user_email:
        raise AccessDeniedException(f"{USER_HEADER} header required")
    return await service.authenticate(x_user_email)


# ========== Tickets ==========

@router.post(
    "/tickets",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket",
    description="""
    Create a ticket, score its priority, compute SLA targets and capture the
    immutable snapshot of category, SLA, priority and tags.

    Tickets with a `vendor_handle` are numbered `SS00001`, others `CS00001`.
    """
)
async def create_ticket(
    payload: TicketCreateRequest,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketResponse:
    ticket = await service.create_ticket(payload, user)
    return TicketResponse.model_validate(ticket)


@router.get(
    "/tickets",
    response_model=TicketListResponse,
    summary="List tickets visible to the caller"
)
async def list_tickets(
    status_filter: Optional[List[TicketStatus]] = Query(None, alias="status"),
    department: Optional[str] = Query(None),
    vendor_handle: Optional[str] = Query(None),
    assignee_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketListResponse:
    filters = {
        "status": [s.value for s in status_filter] if status_filter else None,
        "department": department,
        "vendor_handle": vendor_handle,
        "assignee_id": assignee_id,
    }
    tickets = await service.list_tickets(user, filters, limit=limit, offset=offset)
    return TicketListResponse(
        tickets=[TicketResponse.model_validate(t) for t in tickets],
        total=len(tickets),
    )


@router.get("/tickets/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(
    ticket_id: str,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketResponse:
    ticket = await service.get_ticket(ticket_id, user)
    return TicketResponse.model_validate(ticket)


@router.patch(
    "/tickets/{ticket_id}",
    response_model=TicketResponse,
    summary="Update a ticket",
    description="""
    Partial update. Department rules decide which fields the caller may
    change; snapshot fields are never updated here.
    """
)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketResponse:
    ticket = await service.update_ticket(ticket_id, payload, user)
    return TicketResponse.model_validate(ticket)


@router.post(
    "/tickets/{ticket_id}/resnapshot",
    response_model=TicketResponse,
    summary="Re-capture a ticket snapshot (admin)"
)
async def resnapshot_ticket(
    ticket_id: str,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketResponse:
    ticket = await service.resnapshot_ticket(ticket_id, user)
    return TicketResponse.model_validate(ticket)


# ========== Comments ==========

@router.get("/tickets/{ticket_id}/comments", response_model=List[CommentResponse], tags=["Comments"])
async def list_comments(
    ticket_id: str,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> List[CommentResponse]:
    comments = await service.list_comments(ticket_id, user)
    return [CommentResponse.model_validate(c) for c in comments]


@router.post(
    "/tickets/{ticket_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Comments"],
    summary="Add a comment; @mentions notify the mentioned users"
)
async def add_comment(
    ticket_id: str,
    payload: CommentCreateRequest,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> CommentResponse:
    comment = await service.add_comment(ticket_id, payload.body, user)
    return CommentResponse.model_validate(comment)


# ========== Routing / Access / Admin ==========

@router.post(
    "/routing/preview",
    response_model=RoutingPreviewResponse,
    tags=["Routing"],
    summary="Preview the Slack channels for a ticket event"
)
async def preview_routing(
    context: NotificationContext,
    user: User = Depends(get_current_user),
    notification_router: NotificationRouter = Depends(get_notification_router),
) -> RoutingPreviewResponse:
    channels = notification_router.channels_for(context)
    return RoutingPreviewResponse(
        channels=channels,
        channel_names=notification_router.channel_names(channels),
    )


@router.get("/access/me", response_model=AccessSummaryResponse, tags=["Access"])
async def access_me(
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> AccessSummaryResponse:
    return AccessSummaryResponse(**service.access_summary(user))


@router.post(
    "/admin/snapshots/backfill",
    response_model=BackfillResponse,
    tags=["Admin"],
    summary="Capture snapshots for tickets that have none"
)
async def backfill_snapshots(
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> BackfillResponse:
    return BackfillResponse(**await service.backfill_snapshots(user))


@router.put(
    "/users/{user_id}/manager",
    response_model=ManagerChainResponse,
    tags=["Admin"],
    summary="Change a user's manager; cyclic reporting lines are rejected"
)
async def assign_manager(
    user_id: str,
    payload: ManagerAssignRequest,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> ManagerChainResponse:
    chain = await service.assign_manager(user_id, payload.manager_id, user)
    return ManagerChainResponse(
        user_id=user_id,
        manager_id=payload.manager_id,
        management_chain=[manager.id for manager in chain],
    )
