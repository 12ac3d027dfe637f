"""Integration tests for the SQLAlchemy group store on SQLite."""

import pytest
from sqlalchemy.exc import OperationalError

from learnsync.core.locks import LocalTenantLockManager
from learnsync.models import Group, GroupMember, SchoolRole
from learnsync.services.base import DependencyFailure
from learnsync.services.domain import GroupService, SchoolMemberService, SQLAlchemyGroupStore
from learnsync.services.domain.hierarchy import find_cycle

from tests.conftest import SCHOOL_ID, OTHER_SCHOOL_ID, OUTSIDER_ID


@pytest.fixture
def db_store(db_session):
    return SQLAlchemyGroupStore(db_session)


@pytest.fixture
def db_service(db_store):
    service = GroupService(db_store, LocalTenantLockManager(blocking_timeout=5))
    service.initialize({"hierarchy_max_depth": 64})
    return service


@pytest.fixture
def db_tree(db_service):
    """Root → A → B, plus C under Root."""
    root = db_service.create_group(SCHOOL_ID, "Root").unwrap()
    a = db_service.create_group(SCHOOL_ID, "A", root.id).unwrap()
    b = db_service.create_group(SCHOOL_ID, "B", a.id).unwrap()
    c = db_service.create_group(SCHOOL_ID, "C", root.id).unwrap()
    return {"root": root, "a": a, "b": b, "c": c}


def _rows(session_factory):
    """Membership rows as seen from a separate session (committed data only)."""
    db = session_factory()
    try:
        return {(m.user_id, m.group_id) for m in db.query(GroupMember).all()}
    finally:
        db.close()


def _parents(session_factory):
    db = session_factory()
    try:
        return {g.id: g.parent_id for g in db.query(Group).all()}
    finally:
        db.close()


class TestGroupRecords:
    """Tests for group reads and writes."""

    def test_created_group_is_committed(self, db_tree, session_factory):
        parents = _parents(session_factory)
        assert parents[db_tree["b"].id] == db_tree["a"].id
        assert parents[db_tree["root"].id] is None

    def test_timestamps_are_set(self, db_tree):
        assert db_tree["root"].created_at is not None
        assert db_tree["root"].updated_at is not None

    def test_get_group_is_scoped_to_school(self, db_store, db_tree):
        assert db_store.get_group(SCHOOL_ID, db_tree["a"].id) is not None
        assert db_store.get_group(OTHER_SCHOOL_ID, db_tree["a"].id) is None

    def test_list_children_in_creation_order(self, db_store, db_tree):
        children = db_store.list_children(SCHOOL_ID, db_tree["root"].id)
        assert [g.id for g in children] == [db_tree["a"].id, db_tree["c"].id]

    def test_rename(self, db_service, db_tree):
        outcome = db_service.update_group(SCHOOL_ID, db_tree["c"].id, name="Choir").unwrap()
        assert outcome.group.name == "Choir"


class TestMemberships:
    """Tests for membership rows."""

    def test_assign_cascades_and_commits(self, db_service, db_tree, session_factory):
        db_service.assign_members(SCHOOL_ID, db_tree["b"].id, [4, 5]).unwrap()

        assert _rows(session_factory) == {
            (user_id, group_id)
            for user_id in (4, 5)
            for group_id in (db_tree["b"].id, db_tree["a"].id, db_tree["root"].id)
        }

    def test_assign_twice_creates_no_duplicates(self, db_service, db_tree, session_factory):
        db_service.assign_members(SCHOOL_ID, db_tree["b"].id, [4])
        result = db_service.assign_members(SCHOOL_ID, db_tree["b"].id, [4])

        assert result.success
        assert result.data == []
        assert len(_rows(session_factory)) == 3

    def test_outsider_rejected(self, db_service, db_tree, session_factory):
        result = db_service.assign_members(SCHOOL_ID, db_tree["a"].id, [OUTSIDER_ID])

        assert result.error.error_code == "VALIDATION_ERROR"
        assert _rows(session_factory) == set()

    def test_unassign_single_row(self, db_service, db_tree, session_factory):
        db_service.assign_members(SCHOOL_ID, db_tree["b"].id, [4])

        db_service.unassign_member(SCHOOL_ID, db_tree["a"].id, 4).unwrap()

        assert _rows(session_factory) == {(4, db_tree["b"].id), (4, db_tree["root"].id)}

    def test_resolve_members_with_roles(self, db_service, db_store, db_tree):
        db_store.create_memberships(SCHOOL_ID, [(3, db_tree["root"].id), (4, db_tree["a"].id), (4, db_tree["b"].id)])

        members = db_service.resolve_members(SCHOOL_ID, db_tree["root"].id).unwrap().members

        assert [(m.user_id, m.role) for m in members] == [(3, SchoolRole.TEACHER), (4, SchoolRole.STUDENT)]
        assert members[0].email == "user3@example.com"

    def test_count_direct_members(self, db_service, db_store, db_tree):
        db_service.assign_members(SCHOOL_ID, db_tree["a"].id, [4, 5])
        assert db_store.count_direct_members(SCHOOL_ID) == {db_tree["a"].id: 2, db_tree["root"].id: 2}


class TestReparent:
    """Tests for reparenting against the database."""

    def test_cycle_is_broken_atomically(self, db_service, db_tree, session_factory):
        outcome = db_service.reparent_group(SCHOOL_ID, db_tree["root"].id, db_tree["b"].id).unwrap()

        parents = _parents(session_factory)
        assert outcome.detached_ids == [db_tree["a"].id]
        assert parents[db_tree["a"].id] is None
        assert parents[db_tree["root"].id] == db_tree["b"].id
        assert find_cycle(db_service.store.list_groups(SCHOOL_ID)) is None

    def test_failed_commit_leaves_forest_unchanged(self, db_service, db_store, db_tree, session_factory, monkeypatch):
        before = _parents(session_factory)

        def broken_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db_store.db, "commit", broken_commit)

        result = db_service.reparent_group(SCHOOL_ID, db_tree["root"].id, db_tree["b"].id)

        assert result.error.error_code == "DEPENDENCY_FAILURE"
        assert _parents(session_factory) == before

    def test_database_error_becomes_dependency_failure(self, db_store, monkeypatch):
        def broken_query(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_store.db, "query", broken_query)

        with pytest.raises(DependencyFailure):
            db_store.list_groups(SCHOOL_ID)


class TestDeleteGroup:
    """Tests for group deletion against the database."""

    def test_delete_promotes_children_and_drops_rows(self, db_service, db_tree, session_factory):
        db_service.assign_members(SCHOOL_ID, db_tree["b"].id, [4])

        db_service.delete_group(SCHOOL_ID, db_tree["a"].id).unwrap()

        parents = _parents(session_factory)
        assert db_tree["a"].id not in parents
        assert parents[db_tree["b"].id] is None
        assert _rows(session_factory) == {(4, db_tree["b"].id), (4, db_tree["root"].id)}


class TestSchoolMembers:
    """Tests for school membership against the database."""

    def test_list_members(self, db_store):
        service = SchoolMemberService(db_store)
        service.initialize()

        members = service.list_members(SCHOOL_ID).unwrap()

        assert [m.user_id for m in members] == [1, 2, 3, 4, 5, 6]
        assert members[0].role == SchoolRole.SUPER_ADMIN

    def test_remove_members_drops_group_rows(self, db_store, db_service, db_tree, session_factory):
        db_service.assign_members(SCHOOL_ID, db_tree["b"].id, [4, 5])
        service = SchoolMemberService(db_store)
        service.initialize()

        result = service.remove_members(SCHOOL_ID, [4])

        assert result.data == 1
        assert result.metadata["group_memberships_removed"] == 3
        assert {user_id for user_id, _ in _rows(session_factory)} == {5}
        assert service.get_role(SCHOOL_ID, 4) is None
