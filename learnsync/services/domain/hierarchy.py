"""
Group Hierarchy Traversal

Pure functions over a school's group forest. Every function takes the lookups
it needs as callables, returns a fresh result per call and never mutates a
shared collector. All walks keep a visited set and a depth bound so that a
corrupt parent pointer surfaces as ``InvariantViolationError`` instead of an
endless loop.
"""

from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from learnsync.services.base import InvariantViolationError
from learnsync.services.domain.stores import GroupRecord, MemberRecord

DEFAULT_MAX_DEPTH = 64

GroupLookup = Callable[[int], Optional[GroupRecord]]
ChildrenLookup = Callable[[int], Sequence[GroupRecord]]


class ChildIndex:
    """
    Adjacency list for one school's forest.

    Children are kept in creation order (ascending id) so that every
    traversal over the index is deterministic.
    """

    def __init__(self, groups: Iterable[GroupRecord]):
        self._groups: Dict[int, GroupRecord] = {}
        self._children: Dict[Optional[int], List[GroupRecord]] = defaultdict(list)
        for group in groups:
            self._groups[group.id] = group
            self._children[group.parent_id].append(group)
        for siblings in self._children.values():
            siblings.sort(key=lambda g: g.id)

    def __contains__(self, group_id: int) -> bool:
        return group_id in self._groups

    def __len__(self) -> int:
        return len(self._groups)

    def get(self, group_id: int) -> Optional[GroupRecord]:
        return self._groups.get(group_id)

    def children(self, parent_id: Optional[int]) -> List[GroupRecord]:
        return list(self._children.get(parent_id, ()))

    def roots(self) -> List[GroupRecord]:
        # Groups pointing at a parent outside the index are treated as roots too
        return sorted(
            (g for g in self._groups.values() if g.parent_id is None or g.parent_id not in self._groups),
            key=lambda g: g.id
        )

    def groups(self) -> List[GroupRecord]:
        return sorted(self._groups.values(), key=lambda g: g.id)


def ancestor_chain(group: GroupRecord, get_group: GroupLookup, max_depth: int = DEFAULT_MAX_DEPTH) -> List[int]:
    """
    Walk parent pointers from ``group`` up to its root.

    Args:
        group: Starting group (included as the first element)
        get_group: Lookup returning a group by id, or None when it does not exist
        max_depth: Maximum number of parent hops allowed

    Returns:
        Group ids ordered from ``group`` to the root.

    Raises:
        InvariantViolationError: A cycle was found or the chain is deeper than ``max_depth``
    """
    chain = [group.id]
    seen = {group.id}
    parent_id = group.parent_id

    while parent_id is not None:
        if parent_id in seen:
            raise InvariantViolationError(
                f"Cycle in ancestor chain of group {group.id}",
                chain + [parent_id]
            )
        if len(chain) > max_depth:
            raise InvariantViolationError(
                f"Ancestor chain of group {group.id} exceeds depth {max_depth}",
                chain
            )

        parent = get_group(parent_id)
        if parent is None:
            # Dangling pointer, the chain ends here
            break

        chain.append(parent.id)
        seen.add(parent.id)
        parent_id = parent.parent_id

    return chain


def collect_subtree(root_id: int, list_children: ChildrenLookup,
                    max_depth: int = DEFAULT_MAX_DEPTH) -> List[GroupRecord]:
    """
    Collect every descendant of ``root_id`` in depth-first pre-order.

    Children of each node are visited in the order ``list_children`` returns
    them. The root itself is not part of the result.

    Raises:
        InvariantViolationError: A group was reached twice (cycle) or the
            subtree is deeper than ``max_depth``
    """
    result: List[GroupRecord] = []
    seen = {root_id}
    stack = [(child, 1) for child in reversed(list_children(root_id))]

    while stack:
        group, depth = stack.pop()
        if group.id in seen:
            raise InvariantViolationError(
                f"Group {group.id} reached twice below group {root_id}",
                [root_id, group.id]
            )
        if depth > max_depth:
            raise InvariantViolationError(
                f"Subtree of group {root_id} exceeds depth {max_depth}",
                [root_id, group.id]
            )

        seen.add(group.id)
        result.append(group)
        stack.extend((child, depth + 1) for child in reversed(list_children(group.id)))

    return result


def descendant_ids(root_id: int, list_children: ChildrenLookup,
                   max_depth: int = DEFAULT_MAX_DEPTH) -> List[int]:
    """Ids of every descendant of ``root_id`` in pre-order."""
    return [group.id for group in collect_subtree(root_id, list_children, max_depth)]


def path_between(ancestor_id: int, descendant: int, subtree: Sequence[GroupRecord]) -> List[int]:
    """
    Path from a direct child of ``ancestor_id`` down to ``descendant``.

    Args:
        ancestor_id: Top of the path (excluded)
        descendant: Bottom of the path (included)
        subtree: Descendants of ``ancestor_id`` as returned by ``collect_subtree``

    Returns:
        Group ids ordered top-down, first element being the direct child of
        ``ancestor_id``. Empty when ``descendant`` is not in ``subtree``.
    """
    parents = {group.id: group.parent_id for group in subtree}
    if descendant not in parents:
        return []

    path = [descendant]
    current = descendant
    # A well-formed subtree needs at most len(parents) hops
    for _ in range(len(parents)):
        parent = parents[current]
        if parent == ancestor_id:
            path.reverse()
            return path
        if parent not in parents:
            break
        path.append(parent)
        current = parent

    raise InvariantViolationError(
        f"Group {descendant} is not connected to group {ancestor_id}",
        [ancestor_id] + path
    )


def build_child_tree(root_id: int, list_children: ChildrenLookup,
                     max_depth: int = DEFAULT_MAX_DEPTH) -> List[Dict[str, Any]]:
    """
    Nested ``{"id", "name", "children"}`` tree under ``root_id``.

    Built from ``collect_subtree`` so the same cycle and depth guards apply.
    """
    nodes: Dict[int, Dict[str, Any]] = {}
    tree: List[Dict[str, Any]] = []

    for group in collect_subtree(root_id, list_children, max_depth):
        node = {"id": group.id, "name": group.name, "children": []}
        nodes[group.id] = node
        if group.parent_id == root_id:
            tree.append(node)
        else:
            nodes[group.parent_id]["children"].append(node)

    return tree


def find_cycle(groups: Iterable[GroupRecord]) -> Optional[List[int]]:
    """
    Look for a cycle among parent pointers.

    Walks the ancestor chain of every group. Each walk terminates within
    ``len(groups)`` steps on a forest.

    Returns:
        Ids forming the first cycle found, or None when the groups form a forest.
    """
    index = {group.id: group for group in groups}
    cleared = set()

    for start in sorted(index):
        trail: List[int] = []
        position: Dict[int, int] = {}
        current = start
        while current is not None and current in index and current not in cleared:
            if current in position:
                return trail[position[current]:]
            position[current] = len(trail)
            trail.append(current)
            current = index[current].parent_id
        cleared.update(trail)

    return None


def merge_members(batches: Iterable[Sequence[MemberRecord]]) -> List[MemberRecord]:
    """
    Union of member batches, keeping the first occurrence of each user.
    """
    merged: Dict[int, MemberRecord] = {}
    for batch in batches:
        for member in batch:
            if member.user_id not in merged:
                merged[member.user_id] = member
    return list(merged.values())
