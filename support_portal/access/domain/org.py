"""
Org Hierarchy
=============

Manager tree built from ``user.manager_id`` back-references.

Users are held in a table keyed by id and edges are plain ids, so the tree
never holds object references and cycles can be detected explicitly.
"""

from typing import Dict, Iterable, List, Optional

from support_portal.access.domain.entities import User
from support_portal.core import OrgHierarchyCycleException


class OrgHierarchy:
    """Lookup-only view of the reporting lines between users."""

    def __init__(self, users: Iterable[User]):
        self._users: Dict[str, User] = {user.id: user for user in users}
        self._managers: Dict[str, Optional[str]] = {
            user_id: user.manager_id for user_id, user in self._users.items()
        }

    def get(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def manager_of(self, user_id: str) -> Optional[User]:
        manager_id = self._managers.get(user_id)
        return self._users.get(manager_id) if manager_id else None

    def management_chain(self, user_id: str) -> List[User]:
        """
        Managers from the direct manager up to the root.

        Raises:
            OrgHierarchyCycleException: if the chain loops back on itself
        """
        chain: List[User] = []
        seen = {user_id}
        current = self._managers.get(user_id)
        while current:
            if current in seen:
                raise OrgHierarchyCycleException(user_id, current)
            seen.add(current)
            manager = self._users.get(current)
            if manager is None:
                # Dangling reference: manager not in the table
                break
            chain.append(manager)
            current = self._managers.get(current)
        return chain

    def would_create_cycle(self, user_id: str, manager_id: Optional[str]) -> bool:
        if manager_id is None:
            return False
        if manager_id == user_id:
            return True
        current: Optional[str] = manager_id
        seen = set()
        while current and current not in seen:
            if current == user_id:
                return True
            seen.add(current)
            current = self._managers.get(current)
        return False

    def assign_manager(self, user_id: str, manager_id: Optional[str]) -> None:
        """
        Re-point a user's manager.

        Raises:
            OrgHierarchyCycleException: on self-management or a cyclic edit
        """
        if self.would_create_cycle(user_id, manager_id):
            raise OrgHierarchyCycleException(user_id, manager_id or "")
        self._managers[user_id] = manager_id
        user = self._users.get(user_id)
        if user is not None:
            user.manager_id = manager_id

