"""Tests for the Celery group tasks, executed eagerly with ``apply``."""

from contextlib import contextmanager

import pytest

from learnsync.config.celery_config import celery_app
from learnsync.config.settings import settings
from learnsync.services.base import DependencyFailure
from learnsync.tasks import group_tasks
from learnsync.tasks.group_tasks import assign_members_task, verify_forest_task

from tests.conftest import SCHOOL_ID


@pytest.fixture(autouse=True)
def in_memory_service(service, monkeypatch):
    """Run the tasks against the in-memory GroupService."""

    @contextmanager
    def scope():
        yield service

    monkeypatch.setattr(group_tasks, "group_service_scope", scope)
    return service


@pytest.fixture
def chain(make_group):
    root = make_group("Year 9")
    child = make_group("9A", root)
    return root, child


@pytest.fixture
def eager_retries(monkeypatch):
    """Let eager retries re-run the task instead of raising Retry."""
    monkeypatch.setitem(celery_app.conf, "task_eager_propagates", False)


class TestAssignMembersTask:
    """Tests for groups.assign_members."""

    def test_registered_name(self):
        assert assign_members_task.name == "groups.assign_members"

    def test_assigns_with_cascade(self, store, chain):
        root, child = chain

        result = assign_members_task.apply(args=(SCHOOL_ID, child.id, [4, 5])).get()

        assert result["success"] is True
        assert sorted(map(tuple, result["created"])) == sorted(
            [(4, child.id), (4, root.id), (5, child.id), (5, root.id)]
        )
        assert result["ancestor_chain"] == [child.id, root.id]
        assert store.memberships() == {tuple(pair) for pair in result["created"]}

    def test_rerun_is_idempotent(self, store, chain):
        _, child = chain
        assign_members_task.apply(args=(SCHOOL_ID, child.id, [4])).get()

        result = assign_members_task.apply(args=(SCHOOL_ID, child.id, [4])).get()

        assert result["created"] == []
        assert result["skipped"] == 2

    def test_not_found_is_reported_without_retry(self, store):
        result = assign_members_task.apply(args=(SCHOOL_ID, 404, [4])).get()

        assert result["success"] is False
        assert result["error_code"] == "NOT_FOUND"
        assert store.get_metrics().get("create_memberships", 0) == 0

    def test_dependency_failure_is_retried(self, store, chain, eager_retries):
        _, child = chain
        store.fail_on("create_memberships", times=1)

        async_result = assign_members_task.apply(args=(SCHOOL_ID, child.id, [4]))

        assert async_result.successful()
        result = async_result.get()
        assert result["success"] is True
        assert len(result["created"]) == 2
        assert store.get_metrics()["create_memberships"] == 2

    def test_gives_up_after_max_retries(self, store, chain, eager_retries):
        _, child = chain
        store.fail_on("create_memberships", times=100)

        async_result = assign_members_task.apply(args=(SCHOOL_ID, child.id, [4]))

        assert async_result.failed()
        with pytest.raises(DependencyFailure):
            async_result.get()
        assert store.get_metrics()["create_memberships"] == settings.task_max_retries + 1
        assert store.memberships() == set()


class TestVerifyForestTask:
    """Tests for groups.verify_forest."""

    def test_healthy_forest(self, chain):
        result = verify_forest_task.apply(args=(SCHOOL_ID,)).get()

        assert result["success"] is True
        assert result["groups"] == 2
        assert result["roots"] == 1

    def test_cycle_reported(self, store, chain):
        root, child = chain
        store.set_parent_unchecked(root.id, child.id)

        result = verify_forest_task.apply(args=(SCHOOL_ID,)).get()

        assert result["success"] is False
        assert result["error_code"] == "INVARIANT_VIOLATION"
        assert sorted(result["details"]["group_ids"]) == sorted([root.id, child.id])
