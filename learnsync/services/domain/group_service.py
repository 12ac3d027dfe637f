"""
Group Domain Service

This service handles group management business logic for one school at a
time: the group forest, cascading membership assignment, transitive member
resolution and cycle-safe reparenting.

Membership propagates upward. Assigning a user to a group also assigns them
to every ancestor of that group, so a member of a subgroup counts as a member
of all parent groups. Removing a membership touches a single row only.
"""

import logging
from dataclasses import dataclass, replace
from functools import partial
from typing import Any, Dict, Iterable, List, Optional

from learnsync.core.locks import TenantLockManager, LocalTenantLockManager
from learnsync.services.base import (
    BaseService, ServiceResult, service_method, ValidationError, NotFoundError, InvariantViolationError
)
from learnsync.services.domain.hierarchy import (
    DEFAULT_MAX_DEPTH, ChildIndex, ancestor_chain, build_child_tree, collect_subtree,
    find_cycle, merge_members, path_between
)
from learnsync.services.domain.stores import GroupRecord, GroupStore, MemberRecord, MembershipPair

logger = logging.getLogger(__name__)

# Marks "parent not given" in update_group, None means "make it a root"
UNSET: Any = object()


@dataclass
class GroupDetail:
    """A group together with a member list."""
    group: GroupRecord
    members: List[MemberRecord]


@dataclass
class GroupListing:
    """A group with the number of its direct members."""
    group: GroupRecord
    member_count: int


@dataclass
class ReparentOutcome:
    """Result of a reparent: the moved group and the children promoted to roots."""
    group: GroupRecord
    detached_ids: List[int]


def clean_user_ids(user_ids: Iterable[Any]) -> List[int]:
    if user_ids is None or isinstance(user_ids, (str, bytes)):
        raise ValidationError("user_ids must be a list of user ids", "user_ids", user_ids)

    cleaned: List[int] = []
    for user_id in user_ids:
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise ValidationError(f"Invalid user id: {user_id!r}", "user_ids", user_id)
        if user_id not in cleaned:
            cleaned.append(user_id)

    if not cleaned:
        raise ValidationError("At least one user id is required", "user_ids", [])
    return cleaned


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Group name must not be empty", "name", name)
    return name.strip()


class GroupService(BaseService):
    """Service for group hierarchy and membership management."""

    def __init__(self, store: GroupStore, lock_manager: TenantLockManager = None):
        super().__init__("GroupService")
        self.store = store
        self.lock_manager = lock_manager or LocalTenantLockManager()

    @property
    def max_depth(self) -> int:
        return self.get_config("hierarchy_max_depth", DEFAULT_MAX_DEPTH)

    # Internal helpers

    def _require_group(self, school_id: str, group_id: int, resource: str = "Group") -> GroupRecord:
        group = self.store.get_group(school_id, group_id)
        if group is None:
            raise NotFoundError(resource, group_id)
        return group

    def _annotate_roles(self, school_id: str, members: List[MemberRecord]) -> List[MemberRecord]:
        roles = self.store.get_roles(school_id, [m.user_id for m in members])
        return [replace(m, role=roles.get(m.user_id)) for m in members]

    def _apply_reparent(self, school_id: str, group: GroupRecord, new_parent_id: Optional[int]) -> List[int]:
        """
        Move ``group`` under ``new_parent_id`` inside the caller's transaction.

        When the new parent is a descendant of ``group``, the direct child of
        ``group`` on the path down to it is promoted to a root first, which
        breaks the would-be cycle.

        Returns:
            Ids of the children promoted to roots.
        """
        if new_parent_id is not None and new_parent_id == group.id:
            raise ValidationError("A group cannot be its own parent", "parent_id", new_parent_id)
        if new_parent_id is not None:
            self._require_group(school_id, new_parent_id, "Parent group")
        if new_parent_id == group.parent_id:
            return []

        subtree = collect_subtree(group.id, partial(self.store.list_children, school_id), self.max_depth)

        detached: List[int] = []
        if new_parent_id is not None and any(g.id == new_parent_id for g in subtree):
            path = path_between(group.id, new_parent_id, subtree)
            detached = path[:1]
            self.store.update_parent_many(school_id, detached, None)
            self.logger.info(
                f"Group {group.id} moves under its descendant {new_parent_id}, "
                f"promoting {detached} to root"
            )

        self.store.update_parent(school_id, group.id, new_parent_id)
        return detached

    # Membership

    @service_method
    def assign_members(self, school_id: str, group_id: int, user_ids: Iterable[int]) -> ServiceResult[List[MembershipPair]]:
        """
        Assign users to a group and to every ancestor of it.

        Pairs that already exist are skipped, so repeating a call is a no-op.

        Returns:
            The newly created (user_id, group_id) pairs.
        """
        user_ids = clean_user_ids(user_ids)
        self._require_group(school_id, group_id)

        roles = self.store.get_roles(school_id, user_ids)
        outsiders = [user_id for user_id in user_ids if user_id not in roles]
        if outsiders:
            raise ValidationError("Users are not members of this school", "user_ids", outsiders)

        # Reparents are held off while the chain is read and the rows written
        with self.lock_manager.hold(school_id) as held:
            with self.store.atomic():
                group = self._require_group(school_id, group_id)
                chain = ancestor_chain(group, partial(self.store.get_group, school_id), self.max_depth)
                pairs = [(user_id, chain_group_id) for user_id in user_ids for chain_group_id in chain]
                created = self.store.create_memberships(school_id, pairs)
                held.verify()

        self.logger.info(
            f"Assigned {len(user_ids)} user(s) to group {group_id} and {len(chain) - 1} ancestor(s), "
            f"{len(created)} new membership(s)"
        )
        return ServiceResult.success_result(
            created,
            metadata={"ancestor_chain": chain, "skipped": len(pairs) - len(created)}
        )

    @service_method
    def unassign_member(self, school_id: str, group_id: int, user_id: int) -> ServiceResult[bool]:
        """Remove one user's membership of one group. Ancestors and descendants keep theirs."""
        self._require_group(school_id, group_id)

        with self.store.atomic():
            if not self.store.delete_membership(school_id, group_id, user_id):
                raise NotFoundError("Group membership", f"user {user_id} in group {group_id}")

        return ServiceResult.success_result(True)

    @service_method
    def unassign_members(self, school_id: str, group_id: int, user_ids: Iterable[int]) -> ServiceResult[List[MembershipPair]]:
        """
        Remove several users from one group.

        Every user must currently be a direct member; otherwise nothing is removed.
        """
        user_ids = clean_user_ids(user_ids)
        self._require_group(school_id, group_id)

        pairs = [(user_id, group_id) for user_id in user_ids]
        existing = set(self.store.existing_memberships(school_id, pairs))
        missing = [user_id for user_id, _ in pairs if (user_id, group_id) not in existing]
        if missing:
            raise NotFoundError("Group membership", f"users {missing} in group {group_id}")

        with self.store.atomic():
            for user_id in user_ids:
                self.store.delete_membership(school_id, group_id, user_id)

        return ServiceResult.success_result(pairs)

    @service_method
    def resolve_members(self, school_id: str, group_id: int) -> ServiceResult[GroupDetail]:
        """
        Members of a group and of all its descendants.

        Each user appears once, with their school role. The group's own
        members come first, followed by descendants in depth-first order,
        children taken in creation order.
        """
        group = self._require_group(school_id, group_id)
        subtree = collect_subtree(group.id, partial(self.store.list_children, school_id), self.max_depth)

        batches = [self.store.list_direct_members(school_id, group.id)]
        batches.extend(self.store.list_direct_members(school_id, g.id) for g in subtree)
        members = self._annotate_roles(school_id, merge_members(batches))

        return ServiceResult.success_result(
            GroupDetail(group=group, members=members),
            metadata={"groups_visited": len(subtree) + 1}
        )

    # Hierarchy

    @service_method
    def reparent_group(self, school_id: str, group_id: int, new_parent_id: Optional[int]) -> ServiceResult[ReparentOutcome]:
        """
        Move a group under a new parent, or make it a root with ``None``.

        Runs under the school's group lock; the detach and the move commit together.
        """
        with self.lock_manager.hold(school_id) as held:
            with self.store.atomic():
                group = self._require_group(school_id, group_id)
                detached = self._apply_reparent(school_id, group, new_parent_id)
                held.verify()

        return ServiceResult.success_result(
            ReparentOutcome(group=self._require_group(school_id, group_id), detached_ids=detached)
        )

    @service_method
    def create_group(self, school_id: str, name: str, parent_id: Optional[int] = None) -> ServiceResult[GroupRecord]:
        """Create a group, optionally under an existing parent of the same school."""
        name = _clean_name(name)
        if parent_id is not None:
            self._require_group(school_id, parent_id, "Parent group")

        with self.store.atomic():
            group = self.store.create_group(school_id, name, parent_id)

        self.logger.info(f"Created group {group.id} '{group.name}' in school {school_id}")
        return ServiceResult.success_result(group)

    @service_method
    def update_group(self, school_id: str, group_id: int, name: Optional[str] = None,
                     parent_id: Any = UNSET) -> ServiceResult[ReparentOutcome]:
        """Rename and/or reparent a group in one transaction."""
        if name is None and parent_id is UNSET:
            raise ValidationError("Nothing to update", "name")
        if name is not None:
            name = _clean_name(name)

        with self.lock_manager.hold(school_id) as held:
            with self.store.atomic():
                group = self._require_group(school_id, group_id)
                if name is not None and name != group.name:
                    self.store.rename_group(school_id, group_id, name)
                detached = []
                if parent_id is not UNSET:
                    detached = self._apply_reparent(school_id, group, parent_id)
                held.verify()

        return ServiceResult.success_result(
            ReparentOutcome(group=self._require_group(school_id, group_id), detached_ids=detached)
        )

    @service_method
    def delete_group(self, school_id: str, group_id: int) -> ServiceResult[GroupRecord]:
        """Delete a group; its children become roots."""
        with self.lock_manager.hold(school_id) as held:
            with self.store.atomic():
                group = self._require_group(school_id, group_id)
                children = [child.id for child in self.store.list_children(school_id, group_id)]
                self.store.delete_group(school_id, group_id)
                held.verify()

        return ServiceResult.success_result(group, metadata={"promoted_to_root": children})

    @service_method
    def get_group(self, school_id: str, group_id: int) -> ServiceResult[GroupDetail]:
        """A group with its direct members."""
        group = self._require_group(school_id, group_id)
        members = self._annotate_roles(school_id, self.store.list_direct_members(school_id, group_id))
        return ServiceResult.success_result(GroupDetail(group=group, members=members))

    @service_method
    def list_groups(self, school_id: str) -> ServiceResult[List[GroupListing]]:
        """Every group of the school with its direct member count."""
        counts = self.store.count_direct_members(school_id)
        listings = [
            GroupListing(group=group, member_count=counts.get(group.id, 0))
            for group in self.store.list_groups(school_id)
        ]
        return ServiceResult.success_result(listings)

    @service_method
    def get_hierarchy(self, school_id: str, group_id: int) -> ServiceResult[Dict[str, Any]]:
        """Ancestor chain (root first) and nested child tree of a group."""
        index = ChildIndex(self.store.list_groups(school_id))
        group = index.get(group_id)
        if group is None:
            raise NotFoundError("Group", group_id)

        chain = ancestor_chain(group, index.get, self.max_depth)
        parents = [index.get(ancestor_id) for ancestor_id in reversed(chain[1:])]

        return ServiceResult.success_result({
            "group": {"id": group.id, "name": group.name, "parent_id": group.parent_id},
            "parent_chain": [{"id": p.id, "name": p.name} for p in parents],
            "child_tree": build_child_tree(group.id, index.children, self.max_depth),
        })

    @service_method
    def verify_forest(self, school_id: str) -> ServiceResult[Dict[str, int]]:
        """
        Check that the school's groups form a forest.

        Raises InvariantViolationError (reported as an error result) with the
        ids of the first cycle found.
        """
        groups = self.store.list_groups(school_id)
        cycle = find_cycle(groups)
        if cycle:
            raise InvariantViolationError(f"Cycle among groups of school {school_id}", cycle)

        index = ChildIndex(groups)
        return ServiceResult.success_result({"groups": len(index), "roots": len(index.roots())})
