"""
Access Domain Entities
======================

Staff user as seen by the access rules. Pure Python, no infrastructure.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

from support_portal.config import Role


@dataclass
class User:
    """
    Portal staff member.

    ``role`` is normally a ``Role`` but a stale role name read from storage
    is kept as a plain string; the evaluator treats it as having no
    permissions. When ``custom_permissions`` is non-empty it fully replaces
    the role-derived permission set.
    """

    id: str
    email: str
    name: str
    role: Union[Role, str]
    department: Optional[str] = None
    sub_department: Optional[str] = None
    additional_roles: List[str] = field(default_factory=list)
    custom_permissions: Optional[List[str]] = None
    manager_id: Optional[str] = None
    slack_user_id: Optional[str] = None
    is_active: bool = True

    def __post_init__(self):
        self.email = self.email.strip().lower()

    @property
    def role_name(self) -> str:
        return self.role.value if isinstance(self.role, Role) else str(self.role)

    @property
    def has_custom_permissions(self) -> bool:
        return bool(self.custom_permissions)

    def matches_mention(self, token: str) -> bool:
        """True when an ``@token`` mention refers to this user by email or name."""
        token = token.lower()
        return token in self.email or token in self.name.lower()
