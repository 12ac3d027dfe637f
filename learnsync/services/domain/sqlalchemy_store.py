"""
SQLAlchemy Group Store

``GroupStore`` backed by a SQLAlchemy session. Writes are flushed
immediately and committed when the outermost ``atomic()`` block exits.
Database errors are raised as ``DependencyFailure``.
"""

import logging
from contextlib import contextmanager
from functools import wraps
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from learnsync.models import Group, GroupMember, SchoolMember, SchoolRole, User
from learnsync.services.base import DependencyFailure
from learnsync.services.domain.stores import GroupRecord, GroupStore, MemberRecord, MembershipPair

logger = logging.getLogger(__name__)


def _db_call(method):
    """Translate SQLAlchemy errors raised by a store method."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Database error in {method.__name__}: {e}")
            raise DependencyFailure(f"Database error in {method.__name__}", "database", e) from e

    return wrapper


def _to_group_record(group: Group) -> GroupRecord:
    return GroupRecord(
        id=group.id,
        school_id=group.school_id,
        name=group.name,
        parent_id=group.parent_id,
        created_at=group.created_at,
        updated_at=group.updated_at
    )


def _to_member_record(user: User, role: Optional[SchoolRole] = None) -> MemberRecord:
    return MemberRecord(
        user_id=user.id,
        full_name=user.full_name,
        email=user.email,
        avatar_url=user.avatar_url,
        role=role
    )


class SQLAlchemyGroupStore(GroupStore):
    """Group store using one SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    def _school_group_ids(self, school_id: str):
        return select(Group.id).where(Group.school_id == school_id)

    # Groups

    @_db_call
    def get_group(self, school_id: str, group_id: int) -> Optional[GroupRecord]:
        group = self.db.query(Group).filter(Group.id == group_id, Group.school_id == school_id).first()
        return _to_group_record(group) if group else None

    @_db_call
    def list_groups(self, school_id: str) -> List[GroupRecord]:
        groups = self.db.query(Group).filter(Group.school_id == school_id).order_by(Group.id).all()
        return [_to_group_record(g) for g in groups]

    @_db_call
    def list_children(self, school_id: str, parent_id: int) -> List[GroupRecord]:
        children = (
            self.db.query(Group)
            .filter(Group.school_id == school_id, Group.parent_id == parent_id)
            .order_by(Group.id)
            .all()
        )
        return [_to_group_record(g) for g in children]

    @_db_call
    def create_group(self, school_id: str, name: str, parent_id: Optional[int] = None) -> GroupRecord:
        group = Group(school_id=school_id, name=name, parent_id=parent_id)
        self.db.add(group)
        self.db.flush()
        self.db.refresh(group)
        return _to_group_record(group)

    @_db_call
    def rename_group(self, school_id: str, group_id: int, name: str) -> None:
        self.db.query(Group).filter(
            Group.id == group_id, Group.school_id == school_id
        ).update({Group.name: name})
        self.db.flush()

    @_db_call
    def update_parent(self, school_id: str, group_id: int, new_parent_id: Optional[int]) -> None:
        self.update_parent_many(school_id, [group_id], new_parent_id)

    @_db_call
    def update_parent_many(self, school_id: str, group_ids: Sequence[int], new_parent_id: Optional[int]) -> None:
        if not group_ids:
            return
        self.db.query(Group).filter(
            Group.id.in_(list(group_ids)), Group.school_id == school_id
        ).update({Group.parent_id: new_parent_id})
        self.db.flush()

    @_db_call
    def delete_group(self, school_id: str, group_id: int) -> None:
        # Detach children first so nothing references the deleted group
        self.db.query(Group).filter(
            Group.parent_id == group_id, Group.school_id == school_id
        ).update({Group.parent_id: None})
        self.db.query(GroupMember).filter(
            GroupMember.group_id == group_id
        ).delete()
        self.db.query(Group).filter(
            Group.id == group_id, Group.school_id == school_id
        ).delete()
        self.db.flush()

    @_db_call
    def count_direct_members(self, school_id: str) -> Dict[int, int]:
        rows = (
            self.db.query(GroupMember.group_id, func.count(GroupMember.user_id))
            .join(Group, Group.id == GroupMember.group_id)
            .filter(Group.school_id == school_id)
            .group_by(GroupMember.group_id)
            .all()
        )
        return {group_id: count for group_id, count in rows}

    # Memberships

    @_db_call
    def list_direct_members(self, school_id: str, group_id: int) -> List[MemberRecord]:
        users = (
            self.db.query(User)
            .join(GroupMember, GroupMember.user_id == User.id)
            .join(Group, Group.id == GroupMember.group_id)
            .filter(GroupMember.group_id == group_id, Group.school_id == school_id)
            .order_by(User.id)
            .all()
        )
        return [_to_member_record(u) for u in users]

    @_db_call
    def existing_memberships(self, school_id: str, pairs: Iterable[MembershipPair]) -> List[MembershipPair]:
        pairs = list(pairs)
        if not pairs:
            return []
        user_ids = {user_id for user_id, _ in pairs}
        group_ids = {group_id for _, group_id in pairs}
        rows = (
            self.db.query(GroupMember.user_id, GroupMember.group_id)
            .join(Group, Group.id == GroupMember.group_id)
            .filter(
                Group.school_id == school_id,
                GroupMember.user_id.in_(user_ids),
                GroupMember.group_id.in_(group_ids)
            )
            .all()
        )
        existing = {(user_id, group_id) for user_id, group_id in rows}
        return [pair for pair in pairs if pair in existing]

    @_db_call
    def create_memberships(self, school_id: str, pairs: Sequence[MembershipPair]) -> List[MembershipPair]:
        existing = set(self.existing_memberships(school_id, pairs))
        created: List[MembershipPair] = []
        for pair in pairs:
            if pair in existing or pair in created:
                continue
            user_id, group_id = pair
            self.db.add(GroupMember(user_id=user_id, group_id=group_id))
            created.append(pair)
        self.db.flush()
        return created

    @_db_call
    def delete_membership(self, school_id: str, group_id: int, user_id: int) -> bool:
        deleted = self.db.query(GroupMember).filter(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
            GroupMember.group_id.in_(self._school_group_ids(school_id))
        ).delete()
        self.db.flush()
        return deleted > 0

    @_db_call
    def delete_user_memberships(self, school_id: str, user_ids: Sequence[int]) -> int:
        deleted = self.db.query(GroupMember).filter(
            GroupMember.user_id.in_(list(user_ids)),
            GroupMember.group_id.in_(self._school_group_ids(school_id))
        ).delete()
        self.db.flush()
        return deleted

    # School membership and roles

    @_db_call
    def get_roles(self, school_id: str, user_ids: Iterable[int]) -> Dict[int, SchoolRole]:
        user_ids = list(user_ids)
        if not user_ids:
            return {}
        rows = (
            self.db.query(SchoolMember.user_id, SchoolMember.role)
            .filter(SchoolMember.school_id == school_id, SchoolMember.user_id.in_(user_ids))
            .all()
        )
        return {user_id: role for user_id, role in rows}

    @_db_call
    def list_school_members(self, school_id: str) -> List[MemberRecord]:
        rows = (
            self.db.query(User, SchoolMember.role)
            .join(SchoolMember, SchoolMember.user_id == User.id)
            .filter(SchoolMember.school_id == school_id)
            .order_by(User.id)
            .all()
        )
        return [_to_member_record(user, role) for user, role in rows]

    @_db_call
    def delete_school_members(self, school_id: str, user_ids: Sequence[int]) -> int:
        deleted = self.db.query(SchoolMember).filter(
            SchoolMember.school_id == school_id,
            SchoolMember.user_id.in_(list(user_ids))
        ).delete()
        self.db.flush()
        return deleted

    # Transactions

    @contextmanager
    def atomic(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.db.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                try:
                    self.db.commit()
                except SQLAlchemyError as e:
                    self.db.rollback()
                    raise DependencyFailure("Database commit failed", "database", e) from e
