"""
Access Value Objects
====================

Role → permission table and the evaluator that answers "may this user do X".

The permission table is immutable data injected into the evaluator; nothing
here reads global state, so one evaluator can serve concurrent requests.
"""

from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from support_portal.access.domain.entities import User
from support_portal.config import ALL_DEPARTMENTS, Department, Role


DEFAULT_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    Role.OWNER.value: [
        "view:dashboard", "view:tickets", "create:tickets", "edit:tickets",
        "delete:tickets", "view:users", "create:users", "edit:users",
        "delete:users", "view:vendors", "create:vendors", "edit:vendors",
        "delete:vendors", "view:analytics", "view:config", "edit:config",
        "view:all_tickets",
    ],
    Role.ADMIN.value: [
        "view:dashboard", "view:tickets", "create:tickets", "edit:tickets",
        "delete:tickets", "view:users", "create:users", "edit:users",
        "view:vendors", "create:vendors", "edit:vendors", "view:analytics",
        "view:config", "edit:config", "view:all_tickets",
    ],
    Role.HEAD.value: [
        "view:dashboard", "view:tickets", "create:tickets", "edit:tickets",
        "view:users", "view:vendors", "view:analytics",
        "view:department_tickets", "view:department_users",
    ],
    Role.MANAGER.value: [
        "view:dashboard", "view:tickets", "create:tickets", "edit:tickets",
        "view:vendors", "view:department_tickets", "view:department_users",
    ],
    Role.LEAD.value: [
        "view:dashboard", "view:tickets", "create:tickets", "edit:tickets",
        "view:vendors", "view:team_tickets",
    ],
    Role.ASSOCIATE.value: [
        "view:dashboard", "view:tickets", "create:tickets", "edit:tickets",
        "view:assigned_tickets",
    ],
    Role.AGENT.value: [
        "view:dashboard", "view:tickets", "create:tickets", "edit:tickets",
        "view:assigned_tickets", "view:department_tickets",
    ],
}

# Roles and the department whose members bypass department scoping
PRIVILEGED_ROLES = frozenset({Role.OWNER.value, Role.ADMIN.value})
GLOBAL_DEPARTMENT = Department.CX.value

LIMITED_UPDATE_FIELDS = ("assignee_id", "status", "tags", "sla_status")
RESTRICTED_UPDATE_FIELDS = (
    "subject",
    "description",
    "category_id",
    "issue_type",
    "department",
    "owner_team",
    "priority_score",
    "priority_tier",
    "priority_badge",
    "is_escalated",
    "vendor_handle",
    "customer",
    "order_ids",
    "attachments",
)
SYSTEM_MANAGED_FIELDS = ("updated_at",)


class PermissionTable(BaseModel):
    """Immutable mapping of role name to its permission strings."""

    model_config = ConfigDict(frozen=True)

    role_permissions: Dict[str, FrozenSet[str]] = Field(
        default_factory=lambda: {
            role: frozenset(perms) for role, perms in DEFAULT_ROLE_PERMISSIONS.items()
        }
    )

    @field_validator("role_permissions", mode="before")
    @classmethod
    def freeze_permissions(cls, v):
        return {str(role): frozenset(perms or ()) for role, perms in dict(v).items()}

    def permissions_for(self, role: str) -> FrozenSet[str]:
        """Permissions of a role; unknown roles get an empty set."""
        return self.role_permissions.get(role, frozenset())


class AccessEvaluator:
    """
    Answers permission, role and ticket-visibility questions.

    Every check fails closed when no user is given.
    """

    def __init__(self, permission_table: Optional[PermissionTable] = None):
        self._table = permission_table or PermissionTable()

    @property
    def permission_table(self) -> PermissionTable:
        return self._table

    # ========== Permission / Role ==========

    def effective_permissions(self, user: Optional[User]) -> FrozenSet[str]:
        """Custom permissions replace, never extend, the role's permissions."""
        if user is None:
            return frozenset()
        if user.has_custom_permissions:
            return frozenset(user.custom_permissions)
        return self._table.permissions_for(user.role_name)

    def has_permission(self, user: Optional[User], permission: str) -> bool:
        return permission in self.effective_permissions(user)

    def has_any_permission(self, user: Optional[User], permissions: Iterable[str]) -> bool:
        granted = self.effective_permissions(user)
        return any(permission in granted for permission in permissions)

    def has_role(self, user: Optional[User], roles: Iterable[str]) -> bool:
        """Exact match on the primary role; no role hierarchy."""
        if user is None:
            return False
        wanted = {role.value if isinstance(role, Role) else str(role) for role in roles}
        return user.role_name in wanted

    # ========== Ticket department rules ==========

    def _sees_everything(self, user: User) -> bool:
        return user.role_name in PRIVILEGED_ROLES or user.department == GLOBAL_DEPARTMENT

    def can_view_ticket(self, user: Optional[User], ticket) -> bool:
        """
        Owners, Admins and CX see every ticket; everyone else only tickets
        of their own department.
        """
        if user is None:
            return False
        if self._sees_everything(user):
            return True
        return user.department is not None and ticket.department == user.department

    def filter_tickets_by_department_access(self, tickets: Sequence, user: Optional[User]) -> list:
        return [ticket for ticket in tickets if self.can_view_ticket(user, ticket)]

    def can_edit_ticket_details(self, user: Optional[User], ticket) -> bool:
        """Core details (subject, category, priority...) are Owner/Admin/CX only."""
        if user is None:
            return False
        return self._sees_everything(user)

    def can_perform_limited_update(self, user: Optional[User], ticket) -> bool:
        # Assignee/status/tags updates follow the same scope as viewing
        return self.can_view_ticket(user, ticket)

    def validate_ticket_update(self, user: Optional[User], ticket, updates: Mapping) -> Optional[str]:
        """
        Check which fields a user may change.

        Returns:
            None when allowed, otherwise a human-readable denial message
        """
        if user is None:
            return "Access denied. Authentication required."

        if self.can_edit_ticket_details(user, ticket):
            return None

        if not self.can_perform_limited_update(user, ticket):
            return f"Access denied. You can only update tickets in {user.department} department."

        restricted = [name for name in updates if name in RESTRICTED_UPDATE_FIELDS]
        if restricted:
            return (
                f"Access denied. Non-CX users cannot edit: {', '.join(restricted)}. "
                f"You can only update: {', '.join(LIMITED_UPDATE_FIELDS)}."
            )

        unknown = [
            name for name in updates
            if name not in LIMITED_UPDATE_FIELDS and name not in SYSTEM_MANAGED_FIELDS
        ]
        if unknown:
            return (
                f"Unknown fields: {', '.join(unknown)}. "
                f"Allowed fields for your role: {', '.join(LIMITED_UPDATE_FIELDS)}."
            )

        return None

    def department_access_summary(self, user: Optional[User]) -> dict:
        """What the user can see, for display in the UI."""
        if user is None:
            return {
                "can_view_all_departments": False,
                "can_edit_all_tickets": False,
                "departments": [],
                "restrictions": ["Authentication required"],
            }

        unrestricted = self._sees_everything(user)
        return {
            "can_view_all_departments": unrestricted,
            "can_edit_all_tickets": unrestricted,
            "departments": [ALL_DEPARTMENTS] if unrestricted else [user.department or "None"],
            "restrictions": [] if unrestricted else [
                "Can only view tickets in your department",
                "Can only update: assignee, status, tags",
                "Cannot edit: subject, description, category, priority",
            ],
        }
