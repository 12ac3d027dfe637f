"""Unit tests for the per-school lock managers."""

import threading
from unittest.mock import MagicMock

import pytest
import redis
from redis.exceptions import LockError

from learnsync.core.locks import (
    LocalTenantLockManager, RedisTenantLockManager, build_lock_manager, lock_key
)
from learnsync.services.base import DependencyFailure


@pytest.fixture
def redis_lock():
    lock = MagicMock()
    lock.acquire.return_value = True
    return lock


@pytest.fixture
def redis_manager(redis_lock):
    manager = MagicMock()
    manager.lock.return_value = redis_lock
    return manager


class TestLockKey:
    """Tests for lock naming."""

    def test_key_is_per_school(self):
        assert lock_key("abc") == "learnsync:lock:school:abc:groups"
        assert lock_key("abc") != lock_key("xyz")


class TestRedisTenantLockManager:
    """Tests for the Redis-backed lock manager."""

    def test_acquire_and_release(self, redis_manager, redis_lock):
        manager = RedisTenantLockManager(redis_manager, timeout=7, blocking_timeout=2)

        with manager.hold("abc"):
            redis_lock.release.assert_not_called()

        redis_manager.lock.assert_called_once_with(lock_key("abc"), timeout=7, blocking_timeout=2)
        redis_lock.release.assert_called_once()

    def test_released_when_block_raises(self, redis_manager, redis_lock):
        manager = RedisTenantLockManager(redis_manager)

        with pytest.raises(RuntimeError):
            with manager.hold("abc"):
                raise RuntimeError("boom")

        redis_lock.release.assert_called_once()

    def test_timeout_is_dependency_failure(self, redis_manager, redis_lock):
        redis_lock.acquire.return_value = False
        manager = RedisTenantLockManager(redis_manager)

        with pytest.raises(DependencyFailure) as exc_info:
            with manager.hold("abc"):
                pass

        assert exc_info.value.dependency == "redis"
        redis_lock.release.assert_not_called()

    def test_redis_error_is_dependency_failure(self, redis_manager, redis_lock):
        redis_lock.acquire.side_effect = redis.ConnectionError("refused")
        manager = RedisTenantLockManager(redis_manager)

        with pytest.raises(DependencyFailure):
            with manager.hold("abc"):
                pass

    def test_expired_lock_on_release_is_dependency_failure(self, redis_manager, redis_lock, caplog):
        redis_lock.release.side_effect = LockError("expired")
        manager = RedisTenantLockManager(redis_manager)

        with pytest.raises(DependencyFailure):
            with manager.hold("abc"):
                pass

        assert "expired before release" in caplog.text

    def test_release_error_does_not_mask_block_error(self, redis_manager, redis_lock):
        redis_lock.release.side_effect = LockError("expired")
        manager = RedisTenantLockManager(redis_manager)

        with pytest.raises(RuntimeError):
            with manager.hold("abc"):
                raise RuntimeError("boom")

    def test_verify_while_owned(self, redis_manager, redis_lock):
        redis_lock.owned.return_value = True
        manager = RedisTenantLockManager(redis_manager)

        with manager.hold("abc") as held:
            held.verify()

    def test_verify_after_expiry(self, redis_manager, redis_lock):
        redis_lock.owned.return_value = False
        manager = RedisTenantLockManager(redis_manager)

        with pytest.raises(DependencyFailure) as exc_info:
            with manager.hold("abc") as held:
                held.verify()

        assert "expired while held" in exc_info.value.message
        redis_lock.release.assert_called_once()

    def test_verify_redis_error(self, redis_manager, redis_lock):
        redis_lock.owned.side_effect = redis.ConnectionError("refused")
        manager = RedisTenantLockManager(redis_manager)

        with pytest.raises(DependencyFailure):
            with manager.hold("abc") as held:
                held.verify()


class TestLocalTenantLockManager:
    """Tests for the in-process lock manager."""

    def test_same_school_is_exclusive(self):
        manager = LocalTenantLockManager(blocking_timeout=0.05)

        with manager.hold("abc"):
            with pytest.raises(DependencyFailure):
                with manager.hold("abc"):
                    pass

    def test_verify_is_noop(self):
        manager = LocalTenantLockManager(blocking_timeout=0.05)

        with manager.hold("abc") as held:
            held.verify()

    def test_different_schools_do_not_block(self):
        manager = LocalTenantLockManager(blocking_timeout=0.05)

        with manager.hold("abc"):
            with manager.hold("xyz"):
                pass

    def test_serializes_threads(self):
        manager = LocalTenantLockManager(blocking_timeout=5)
        inside = []
        overlaps = []

        def work():
            for _ in range(50):
                with manager.hold("abc"):
                    inside.append(1)
                    if len(inside) > 1:
                        overlaps.append(1)
                    inside.pop()

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []


class TestBuildLockManager:
    """Tests for backend selection."""

    def test_local(self):
        assert isinstance(build_lock_manager("local"), LocalTenantLockManager)

    def test_redis(self):
        assert isinstance(build_lock_manager("REDIS"), RedisTenantLockManager)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_lock_manager("zookeeper")
