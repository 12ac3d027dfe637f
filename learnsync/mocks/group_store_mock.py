"""
Group Store Mock

In-memory ``GroupStore`` for tests and local tooling. Thread-safe, keeps an
undo journal per thread so ``atomic()`` blocks roll back like a database
transaction, and can be told to fail specific calls with ``DependencyFailure``.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from learnsync.models.schools import SchoolRole
from learnsync.services.base import DependencyFailure
from learnsync.services.domain.stores import GroupRecord, GroupStore, MemberRecord, MembershipPair

logger = logging.getLogger(__name__)


class InMemoryGroupStore(GroupStore):
    """Mock group store holding every school in plain dictionaries."""

    def __init__(self):
        self._lock = threading.RLock()
        self._local = threading.local()

        # In-memory storage
        self._groups: Dict[int, GroupRecord] = {}
        self._users: Dict[int, MemberRecord] = {}
        self._roles: Dict[Tuple[str, int], SchoolRole] = {}
        self._memberships: Set[MembershipPair] = set()
        self._next_group_id = 1

        # Failure injection and metrics
        self._failures: Dict[str, int] = {}
        self._calls: Dict[str, int] = {}

        logger.debug("InMemoryGroupStore initialized")

    # Test setup helpers

    def add_user(self, user_id: int, full_name: str = None, email: str = None, avatar_url: str = None) -> MemberRecord:
        """Register a user."""
        with self._lock:
            user = MemberRecord(
                user_id=user_id,
                full_name=full_name or f"User {user_id}",
                email=email or f"user{user_id}@example.com",
                avatar_url=avatar_url
            )
            self._users[user_id] = user
            return user

    def add_school_member(self, school_id: str, user_id: int, role: SchoolRole = SchoolRole.STUDENT) -> None:
        """Register a user (creating it if needed) as a member of a school."""
        with self._lock:
            if user_id not in self._users:
                self.add_user(user_id)
            self._roles[(school_id, user_id)] = role

    def set_parent_unchecked(self, group_id: int, parent_id: Optional[int]) -> None:
        """Overwrite a parent pointer directly, bypassing all service checks."""
        with self._lock:
            self._groups[group_id] = replace(self._groups[group_id], parent_id=parent_id)

    def fail_on(self, method_name: str, times: int = 1) -> None:
        """Make the next ``times`` calls of ``method_name`` raise DependencyFailure."""
        self._failures[method_name] = times

    def memberships(self) -> Set[MembershipPair]:
        """Snapshot of every membership pair."""
        with self._lock:
            return set(self._memberships)

    def get_metrics(self) -> Dict[str, int]:
        """Number of calls per store method."""
        return dict(self._calls)

    def clear_all(self) -> None:
        """Drop all stored data."""
        with self._lock:
            self._groups.clear()
            self._users.clear()
            self._roles.clear()
            self._memberships.clear()
            self._next_group_id = 1

    # Private helpers

    def _enter(self, method_name: str) -> None:
        self._calls[method_name] = self._calls.get(method_name, 0) + 1
        remaining = self._failures.get(method_name, 0)
        if remaining > 0:
            self._failures[method_name] = remaining - 1
            raise DependencyFailure(f"Injected failure in {method_name}", "mock")

    def _journal(self) -> Optional[List[Callable[[], None]]]:
        return getattr(self._local, "journal", None)

    def _record_undo(self, undo: Callable[[], None]) -> None:
        journal = self._journal()
        if journal is not None:
            journal.append(undo)

    def _owned(self, school_id: str, group_id: int) -> Optional[GroupRecord]:
        group = self._groups.get(group_id)
        if group is None or group.school_id != school_id:
            return None
        return group

    def _set_group(self, group: GroupRecord) -> None:
        previous = self._groups.get(group.id)
        self._groups[group.id] = group

        def undo():
            if previous is None:
                self._groups.pop(group.id, None)
            else:
                self._groups[group.id] = previous

        self._record_undo(undo)

    def _remove_membership(self, pair: MembershipPair) -> None:
        self._memberships.discard(pair)
        self._record_undo(lambda: self._memberships.add(pair))

    # Groups

    def get_group(self, school_id: str, group_id: int) -> Optional[GroupRecord]:
        with self._lock:
            self._enter("get_group")
            return self._owned(school_id, group_id)

    def list_groups(self, school_id: str) -> List[GroupRecord]:
        with self._lock:
            self._enter("list_groups")
            return sorted((g for g in self._groups.values() if g.school_id == school_id), key=lambda g: g.id)

    def list_children(self, school_id: str, parent_id: int) -> List[GroupRecord]:
        with self._lock:
            self._enter("list_children")
            return sorted(
                (g for g in self._groups.values() if g.school_id == school_id and g.parent_id == parent_id),
                key=lambda g: g.id
            )

    def create_group(self, school_id: str, name: str, parent_id: Optional[int] = None) -> GroupRecord:
        with self._lock:
            self._enter("create_group")
            now = datetime.now(timezone.utc)
            group = GroupRecord(
                id=self._next_group_id,
                school_id=school_id,
                name=name,
                parent_id=parent_id,
                created_at=now,
                updated_at=now
            )
            self._next_group_id += 1
            self._set_group(group)
            return group

    def rename_group(self, school_id: str, group_id: int, name: str) -> None:
        with self._lock:
            self._enter("rename_group")
            group = self._owned(school_id, group_id)
            if group is not None:
                self._set_group(replace(group, name=name, updated_at=datetime.now(timezone.utc)))

    def update_parent(self, school_id: str, group_id: int, new_parent_id: Optional[int]) -> None:
        with self._lock:
            self._enter("update_parent")
            group = self._owned(school_id, group_id)
            if group is not None:
                self._set_group(replace(group, parent_id=new_parent_id, updated_at=datetime.now(timezone.utc)))

    def update_parent_many(self, school_id: str, group_ids: Sequence[int], new_parent_id: Optional[int]) -> None:
        with self._lock:
            self._enter("update_parent_many")
            for group_id in group_ids:
                group = self._owned(school_id, group_id)
                if group is not None:
                    self._set_group(replace(group, parent_id=new_parent_id, updated_at=datetime.now(timezone.utc)))

    def delete_group(self, school_id: str, group_id: int) -> None:
        with self._lock:
            self._enter("delete_group")
            group = self._owned(school_id, group_id)
            if group is None:
                return
            for child in [g for g in self._groups.values() if g.parent_id == group_id]:
                self._set_group(replace(child, parent_id=None))
            for pair in [p for p in self._memberships if p[1] == group_id]:
                self._remove_membership(pair)
            del self._groups[group_id]
            self._record_undo(lambda: self._groups.__setitem__(group_id, group))

    def count_direct_members(self, school_id: str) -> Dict[int, int]:
        with self._lock:
            self._enter("count_direct_members")
            counts: Dict[int, int] = {}
            for _, group_id in self._memberships:
                if self._owned(school_id, group_id) is not None:
                    counts[group_id] = counts.get(group_id, 0) + 1
            return counts

    # Memberships

    def list_direct_members(self, school_id: str, group_id: int) -> List[MemberRecord]:
        with self._lock:
            self._enter("list_direct_members")
            if self._owned(school_id, group_id) is None:
                return []
            user_ids = sorted(user_id for user_id, gid in self._memberships if gid == group_id)
            return [self._users[user_id] for user_id in user_ids]

    def existing_memberships(self, school_id: str, pairs: Iterable[MembershipPair]) -> List[MembershipPair]:
        with self._lock:
            self._enter("existing_memberships")
            return [
                pair for pair in pairs
                if pair in self._memberships and self._owned(school_id, pair[1]) is not None
            ]

    def create_memberships(self, school_id: str, pairs: Sequence[MembershipPair]) -> List[MembershipPair]:
        with self._lock:
            self._enter("create_memberships")
            created: List[MembershipPair] = []
            for pair in pairs:
                if pair in self._memberships or self._owned(school_id, pair[1]) is None:
                    continue
                self._memberships.add(pair)
                self._record_undo(lambda pair=pair: self._memberships.discard(pair))
                created.append(pair)
            return created

    def delete_membership(self, school_id: str, group_id: int, user_id: int) -> bool:
        with self._lock:
            self._enter("delete_membership")
            pair = (user_id, group_id)
            if pair not in self._memberships or self._owned(school_id, group_id) is None:
                return False
            self._remove_membership(pair)
            return True

    def delete_user_memberships(self, school_id: str, user_ids: Sequence[int]) -> int:
        with self._lock:
            self._enter("delete_user_memberships")
            doomed = [
                pair for pair in self._memberships
                if pair[0] in user_ids and self._owned(school_id, pair[1]) is not None
            ]
            for pair in doomed:
                self._remove_membership(pair)
            return len(doomed)

    # School membership and roles

    def get_roles(self, school_id: str, user_ids: Iterable[int]) -> Dict[int, SchoolRole]:
        with self._lock:
            self._enter("get_roles")
            return {
                user_id: self._roles[(school_id, user_id)]
                for user_id in user_ids
                if (school_id, user_id) in self._roles
            }

    def list_school_members(self, school_id: str) -> List[MemberRecord]:
        with self._lock:
            self._enter("list_school_members")
            return [
                replace(self._users[user_id], role=role)
                for (sid, user_id), role in sorted(self._roles.items(), key=lambda item: item[0][1])
                if sid == school_id
            ]

    def delete_school_members(self, school_id: str, user_ids: Sequence[int]) -> int:
        with self._lock:
            self._enter("delete_school_members")
            removed = 0
            for user_id in user_ids:
                key = (school_id, user_id)
                if key in self._roles:
                    role = self._roles.pop(key)
                    self._record_undo(lambda key=key, role=role: self._roles.__setitem__(key, role))
                    removed += 1
            return removed

    # Transactions

    @contextmanager
    def atomic(self) -> Iterator[None]:
        outermost = self._journal() is None
        if outermost:
            self._local.journal = []
        try:
            yield
        except BaseException:
            if outermost:
                journal = self._local.journal
                self._local.journal = None
                with self._lock:
                    for undo in reversed(journal):
                        undo()
                logger.debug(f"Rolled back {len(journal)} write(s)")
            raise
        else:
            if outermost:
                self._local.journal = None
