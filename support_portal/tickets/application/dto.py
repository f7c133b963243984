"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from support_portal.config import IssueType, SLAState, TicketStatus


def _strip_tags(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return v
    seen: List[str] = []
    for tag in v:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


NON_NULLABLE_UPDATE_FIELDS = (
    "subject", "department", "status", "tags", "order_ids", "attachments", "is_escalated",
)


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request model for creating a ticket."""
    model_config = ConfigDict(extra="forbid")

    subject: str = Field(..., min_length=1, max_length=500, description="Ticket subject")
    description: Optional[str] = Field(None, description="Ticket body")
    department: str = Field(..., min_length=1, description="Department the ticket is routed to")
    owner_team: Optional[str] = Field(None, description="Owning team (CX sub-department)")
    vendor_handle: Optional[str] = Field(None, description="Vendor handle; present for seller-support tickets")
    category_id: Optional[str] = Field(None, description="Issue category id")
    issue_type: Optional[IssueType] = Field(None, description="Used when no category is given")
    tags: List[str] = Field(default_factory=list)
    customer: Optional[str] = None
    order_ids: List[str] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list)
    assignee_id: Optional[str] = None
    is_escalated: bool = False
    created_at: Optional[datetime] = Field(None, description="Override creation time (imports)")

    @field_validator("subject", "department")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("tags")
    @classmethod
    def normalise_tags(cls, v: List[str]) -> List[str]:
        return _strip_tags(v)


class TicketUpdateRequest(BaseModel):
    """
    Partial ticket update.

    Only fields present in the request body are applied. Snapshot fields
    are not updatable here.
    """
    model_config = ConfigDict(extra="forbid")

    subject: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    department: Optional[str] = Field(None, min_length=1)
    owner_team: Optional[str] = None
    vendor_handle: Optional[str] = None
    category_id: Optional[str] = None
    issue_type: Optional[IssueType] = None
    customer: Optional[str] = None
    order_ids: Optional[List[str]] = None
    attachments: Optional[List[str]] = None
    assignee_id: Optional[str] = None
    status: Optional[TicketStatus] = None
    tags: Optional[List[str]] = None
    sla_status: Optional[SLAState] = None
    is_escalated: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def normalise_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _strip_tags(v)

    @model_validator(mode="after")
    def reject_null_required(self) -> "TicketUpdateRequest":
        for name in NON_NULLABLE_UPDATE_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CommentCreateRequest(BaseModel):
    """Request model for adding a comment."""
    body: str = Field(..., min_length=1, max_length=10_000)


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Response model for a ticket."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_number: str
    subject: str
    description: Optional[str] = None
    department: str
    owner_team: Optional[str] = None
    vendor_handle: Optional[str] = None
    category_id: Optional[str] = None
    issue_type: Optional[IssueType] = None
    status: TicketStatus
    is_escalated: bool = False
    tags: List[str] = Field(default_factory=list)
    customer: Optional[str] = None
    order_ids: List[str] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list)

    priority_score: int
    priority_tier: Optional[str] = None
    priority_badge: Optional[str] = None
    priority_breakdown: Dict[str, Any] = Field(default_factory=dict)

    sla_response_target: Optional[datetime] = None
    sla_resolve_target: Optional[datetime] = None
    sla_status: Optional[str] = None
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    assignee_id: Optional[str] = None
    created_by_id: Optional[str] = None
    slack_thread_ts: Optional[str] = None
    slack_channel_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    category_snapshot: Optional[Dict[str, Any]] = None
    sla_snapshot: Optional[Dict[str, Any]] = None
    priority_snapshot: Optional[Dict[str, Any]] = None
    tags_snapshot: Optional[List[Dict[str, Any]]] = None
    snapshot_version: int = 0
    snapshot_captured_at: Optional[datetime] = None


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    total: int


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    body: str
    author_id: Optional[str] = None
    created_at: datetime


class RoutingPreviewResponse(BaseModel):
    channels: List[str]
    channel_names: List[str]


class AccessSummaryResponse(BaseModel):
    """What the calling user may do."""
    user_id: str
    email: str
    role: str
    department: Optional[str] = None
    permissions: List[str]
    can_view_all_departments: bool
    can_edit_all_tickets: bool
    departments: List[str]
    restrictions: List[str]


class ManagerAssignRequest(BaseModel):
    manager_id: Optional[str] = Field(None, description="New manager; null detaches the user")


class ManagerChainResponse(BaseModel):
    user_id: str
    manager_id: Optional[str] = None
    management_chain: List[str] = Field(default_factory=list, description="Manager ids, nearest first")


class BackfillResponse(BaseModel):
    total: int
    migrated: int
    skipped: int
    failed: int
    errors: List[Dict[str, str]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Overall health status")
    version: str
    timestamp: datetime
    checks: Dict[str, str] = Field(default_factory=dict)
