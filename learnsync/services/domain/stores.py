"""
Group Store Interfaces

The group service never touches the ORM directly. It talks to a
school-scoped ``GroupStore`` that reads and writes groups, memberships and
school roles. Every method takes the school id and must ignore rows that
belong to another school.

Implementations:
- ``SQLAlchemyGroupStore`` (services/domain/sqlalchemy_store.py) for the API and workers
- ``InMemoryGroupStore`` (mocks/group_store_mock.py) for tests and local tooling
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from learnsync.models.schools import SchoolRole

# (user_id, group_id)
MembershipPair = Tuple[int, int]


@dataclass(frozen=True)
class GroupRecord:
    """Detached view of a group row."""
    id: int
    school_id: str
    name: str
    parent_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class MemberRecord:
    """Detached view of a user, optionally annotated with their school role."""
    user_id: int
    full_name: str
    email: str
    avatar_url: Optional[str] = None
    role: Optional[SchoolRole] = None


class GroupStore(ABC):
    """School-scoped persistence for groups and memberships."""

    # Groups

    @abstractmethod
    def get_group(self, school_id: str, group_id: int) -> Optional[GroupRecord]:
        """Group by id, or None when missing or owned by another school."""

    @abstractmethod
    def list_groups(self, school_id: str) -> List[GroupRecord]:
        """Every group of the school, ordered by id."""

    @abstractmethod
    def list_children(self, school_id: str, parent_id: int) -> List[GroupRecord]:
        """Direct children of ``parent_id`` in creation order."""

    @abstractmethod
    def create_group(self, school_id: str, name: str, parent_id: Optional[int] = None) -> GroupRecord:
        """Insert a group."""

    @abstractmethod
    def rename_group(self, school_id: str, group_id: int, name: str) -> None:
        """Change a group's name."""

    @abstractmethod
    def update_parent(self, school_id: str, group_id: int, new_parent_id: Optional[int]) -> None:
        """Point one group at a new parent (None makes it a root)."""

    @abstractmethod
    def update_parent_many(self, school_id: str, group_ids: Sequence[int], new_parent_id: Optional[int]) -> None:
        """Point several groups at the same parent."""

    @abstractmethod
    def delete_group(self, school_id: str, group_id: int) -> None:
        """
        Delete a group together with its membership rows.

        Children of the deleted group become roots.
        """

    @abstractmethod
    def count_direct_members(self, school_id: str) -> Dict[int, int]:
        """Direct member count per group id."""

    # Memberships

    @abstractmethod
    def list_direct_members(self, school_id: str, group_id: int) -> List[MemberRecord]:
        """Users directly assigned to ``group_id``, ordered by user id."""

    @abstractmethod
    def existing_memberships(self, school_id: str, pairs: Iterable[MembershipPair]) -> List[MembershipPair]:
        """Subset of ``pairs`` that already exist."""

    @abstractmethod
    def create_memberships(self, school_id: str, pairs: Sequence[MembershipPair]) -> List[MembershipPair]:
        """
        Insert membership rows, skipping pairs that already exist.

        Returns:
            Only the pairs that were newly inserted.
        """

    @abstractmethod
    def delete_membership(self, school_id: str, group_id: int, user_id: int) -> bool:
        """Delete one membership row. Returns False when it did not exist."""

    @abstractmethod
    def delete_user_memberships(self, school_id: str, user_ids: Sequence[int]) -> int:
        """Delete the users' memberships in every group of the school."""

    # School membership and roles

    @abstractmethod
    def get_roles(self, school_id: str, user_ids: Iterable[int]) -> Dict[int, SchoolRole]:
        """School role of each given user that is a school member."""

    @abstractmethod
    def list_school_members(self, school_id: str) -> List[MemberRecord]:
        """Every member of the school, role-annotated, ordered by user id."""

    @abstractmethod
    def delete_school_members(self, school_id: str, user_ids: Sequence[int]) -> int:
        """Remove users from the school."""

    # Transactions

    @abstractmethod
    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Apply every write made inside the block as one unit.

        On exception all writes of the block are discarded and the
        exception propagates.
        """
