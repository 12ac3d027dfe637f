"""Unit tests for the group forest traversal helpers."""

import pytest

from learnsync.services.base import InvariantViolationError
from learnsync.services.domain.hierarchy import (
    ChildIndex, ancestor_chain, build_child_tree, collect_subtree, descendant_ids,
    find_cycle, merge_members, path_between
)
from learnsync.services.domain.stores import GroupRecord, MemberRecord


def _groups(*edges):
    """Build records from (id, parent_id) pairs."""
    return [GroupRecord(id=gid, school_id="s", name=f"G{gid}", parent_id=parent) for gid, parent in edges]


@pytest.fixture
def forest():
    #   1            6
    #   ├── 2        └── 7
    #   │   ├── 4
    #   │   └── 5
    #   └── 3
    return ChildIndex(_groups((1, None), (2, 1), (3, 1), (4, 2), (5, 2), (6, None), (7, 6)))


class TestChildIndex:
    """Tests for the adjacency index."""

    def test_children_sorted_by_id(self):
        index = ChildIndex(_groups((1, None), (9, 1), (3, 1), (5, 1)))
        assert [g.id for g in index.children(1)] == [3, 5, 9]

    def test_roots_include_dangling_parents(self):
        index = ChildIndex(_groups((1, None), (2, 42)))
        assert [g.id for g in index.roots()] == [1, 2]

    def test_membership_and_length(self, forest):
        assert 4 in forest
        assert 40 not in forest
        assert len(forest) == 7


class TestAncestorChain:
    """Tests for walking parent pointers upward."""

    def test_chain_from_leaf_to_root(self, forest):
        assert ancestor_chain(forest.get(4), forest.get) == [4, 2, 1]

    def test_root_chain_is_itself(self, forest):
        assert ancestor_chain(forest.get(6), forest.get) == [6]

    def test_dangling_parent_ends_chain(self):
        index = ChildIndex(_groups((2, 42)))
        assert ancestor_chain(index.get(2), index.get) == [2]

    def test_cycle_raises(self):
        index = ChildIndex(_groups((1, 3), (2, 1), (3, 2)))
        with pytest.raises(InvariantViolationError) as exc_info:
            ancestor_chain(index.get(1), index.get)
        assert exc_info.value.error_code == "INVARIANT_VIOLATION"
        assert set(exc_info.value.group_ids) == {1, 2, 3}

    def test_depth_bound_raises(self):
        index = ChildIndex(_groups((1, None), (2, 1), (3, 2), (4, 3)))
        with pytest.raises(InvariantViolationError):
            ancestor_chain(index.get(4), index.get, max_depth=2)

    def test_chain_at_depth_bound_passes(self):
        index = ChildIndex(_groups((1, None), (2, 1), (3, 2)))
        assert ancestor_chain(index.get(3), index.get, max_depth=2) == [3, 2, 1]


class TestSubtree:
    """Tests for descendant collection."""

    def test_preorder_excludes_root(self, forest):
        assert descendant_ids(1, forest.children) == [2, 4, 5, 3]

    def test_leaf_has_no_descendants(self, forest):
        assert collect_subtree(5, forest.children) == []

    def test_results_are_fresh_per_call(self, forest):
        first = descendant_ids(2, forest.children)
        first.append(99)
        assert descendant_ids(2, forest.children) == [4, 5]

    def test_cycle_below_root_raises(self):
        index = ChildIndex(_groups((1, None), (2, 3), (3, 2)))

        def children(parent_id):
            # 2 and 3 point at each other; expose 2 under the root as well
            kids = index.children(parent_id)
            return kids + [index.get(2)] if parent_id == 1 else kids

        with pytest.raises(InvariantViolationError):
            collect_subtree(1, children)

    def test_depth_bound_raises(self):
        index = ChildIndex(_groups((1, None), (2, 1), (3, 2), (4, 3)))
        with pytest.raises(InvariantViolationError):
            collect_subtree(1, index.children, max_depth=2)


class TestPathBetween:
    """Tests for the downward path used when breaking cycles."""

    def test_path_starts_at_direct_child(self, forest):
        subtree = collect_subtree(1, forest.children)
        assert path_between(1, 5, subtree) == [2, 5]

    def test_direct_child_path(self, forest):
        subtree = collect_subtree(1, forest.children)
        assert path_between(1, 3, subtree) == [3]

    def test_not_a_descendant(self, forest):
        subtree = collect_subtree(1, forest.children)
        assert path_between(1, 7, subtree) == []

    def test_disconnected_subtree_raises(self):
        subtree = _groups((4, 2), (2, 8))
        with pytest.raises(InvariantViolationError):
            path_between(1, 4, subtree)


class TestChildTree:
    """Tests for the nested tree representation."""

    def test_nested_tree(self, forest):
        assert build_child_tree(1, forest.children) == [
            {"id": 2, "name": "G2", "children": [
                {"id": 4, "name": "G4", "children": []},
                {"id": 5, "name": "G5", "children": []},
            ]},
            {"id": 3, "name": "G3", "children": []},
        ]

    def test_leaf_tree_is_empty(self, forest):
        assert build_child_tree(7, forest.children) == []


class TestFindCycle:
    """Tests for forest verification."""

    def test_forest_has_no_cycle(self, forest):
        assert find_cycle(forest.groups()) is None

    def test_self_loop(self):
        assert find_cycle(_groups((1, 1))) == [1]

    def test_three_cycle_with_tail(self):
        cycle = find_cycle(_groups((1, None), (2, 3), (3, 4), (4, 2), (5, 2)))
        assert sorted(cycle) == [2, 3, 4]

    def test_empty(self):
        assert find_cycle([]) is None


class TestMergeMembers:
    """Tests for member de-duplication."""

    def test_first_occurrence_wins(self):
        first = MemberRecord(user_id=1, full_name="A", email="a@example.com")
        duplicate = MemberRecord(user_id=1, full_name="A again", email="a@example.com")
        second = MemberRecord(user_id=2, full_name="B", email="b@example.com")

        merged = merge_members([[first], [duplicate, second]])

        assert merged == [first, second]
