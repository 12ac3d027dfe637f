"""
Per-school mutual exclusion.

Reparenting and deleting groups rewrite parent pointers. Two of those running
at once for the same school could each see a cycle-free forest and together
create a cycle, so they run while holding the school's group lock and check
the lock is still held before committing.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator

import redis
from redis.exceptions import LockError
from redis.lock import Lock

from learnsync.config.settings import settings
from learnsync.core.redis import RedisManager, redis_manager
from learnsync.services.base import DependencyFailure

logger = logging.getLogger(__name__)


def lock_key(school_id: str) -> str:
    return f"learnsync:lock:school:{school_id}:groups"


class HeldLock:
    """Handle on a lock held by the current block."""

    def verify(self) -> None:
        """
        Check the lock is still held; call before committing guarded writes.

        Raises:
            DependencyFailure: The lock was lost while the block ran
        """


class TenantLockManager(ABC):
    """Hands out one exclusive lock per school."""

    @abstractmethod
    @contextmanager
    def hold(self, school_id: str) -> Iterator[HeldLock]:
        """
        Hold the school's group lock for the duration of the block.

        Raises:
            DependencyFailure: The lock could not be acquired in time, or
                was lost before the block finished
        """


class RedisHeldLock(HeldLock):

    def __init__(self, lock: Lock, key: str):
        self.lock = lock
        self.key = key

    def verify(self) -> None:
        try:
            owned = self.lock.owned()
        except redis.RedisError as e:
            raise DependencyFailure(f"Could not check lock {self.key}", "redis", e) from e
        if not owned:
            raise DependencyFailure(f"Lock {self.key} expired while held", "redis")


class RedisTenantLockManager(TenantLockManager):
    """Redis-backed locks, shared by every API process and worker."""

    def __init__(self, manager: RedisManager = None, timeout: float = None, blocking_timeout: float = None):
        self.manager = manager or redis_manager
        self.timeout = timeout or settings.lock_timeout_seconds
        self.blocking_timeout = blocking_timeout or settings.lock_blocking_timeout_seconds

    @contextmanager
    def hold(self, school_id: str) -> Iterator[HeldLock]:
        key = lock_key(school_id)
        lock = self.manager.lock(key, timeout=self.timeout, blocking_timeout=self.blocking_timeout)
        try:
            acquired = lock.acquire()
        except redis.RedisError as e:
            raise DependencyFailure(f"Could not acquire lock {key}", "redis", e) from e
        if not acquired:
            raise DependencyFailure(f"Timed out waiting for lock {key}", "redis")

        logger.debug(f"Acquired {key}")
        try:
            yield RedisHeldLock(lock, key)
        except BaseException:
            self._release(lock, key, strict=False)
            raise
        self._release(lock, key, strict=True)

    @staticmethod
    def _release(lock: Lock, key: str, strict: bool) -> None:
        try:
            lock.release()
        except (LockError, redis.RedisError) as e:
            logger.error(f"Lock {key} expired before release: {e}")
            if strict:
                raise DependencyFailure(f"Lock {key} expired before release", "redis", e) from e


class LocalTenantLockManager(TenantLockManager):
    """In-process locks for single-process deployments and tests."""

    def __init__(self, blocking_timeout: float = None):
        self.blocking_timeout = blocking_timeout or settings.lock_blocking_timeout_seconds
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, school_id: str) -> threading.Lock:
        with self._guard:
            if school_id not in self._locks:
                self._locks[school_id] = threading.Lock()
            return self._locks[school_id]

    @contextmanager
    def hold(self, school_id: str) -> Iterator[HeldLock]:
        lock = self._lock_for(school_id)
        if not lock.acquire(timeout=self.blocking_timeout):
            raise DependencyFailure(f"Timed out waiting for lock {lock_key(school_id)}", "lock")
        try:
            # A thread lock cannot expire, so there is nothing to verify
            yield HeldLock()
        finally:
            lock.release()


def build_lock_manager(backend: str = None) -> TenantLockManager:
    """Create the lock manager selected by ``settings.lock_backend``."""
    backend = (backend or settings.lock_backend).lower()
    if backend == "redis":
        return RedisTenantLockManager()
    if backend == "local":
        return LocalTenantLockManager()
    raise ValueError(f"Unknown lock backend: {backend}")
