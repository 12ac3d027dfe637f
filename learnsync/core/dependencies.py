"""
FastAPI dependency injection functions.

This module provides dependency functions that can be injected into
FastAPI route handlers for database sessions, Redis connections, services
and the caller's identity.
"""

from functools import lru_cache
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from learnsync.config.settings import settings
from learnsync.core.database import get_db
from learnsync.core.locks import TenantLockManager, build_lock_manager
from learnsync.core.redis import get_redis, RedisManager
from learnsync.services.base import AuthorizationError
from learnsync.services.domain import GroupService, SchoolMemberService, SQLAlchemyGroupStore


# Re-export database dependency
def get_database() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database session.

    Yields:
        Session: SQLAlchemy database session
    """
    yield from get_db()


# Re-export Redis dependency
def get_redis_manager() -> RedisManager:
    """
    FastAPI dependency for Redis manager.

    Returns:
        RedisManager: Redis connection manager
    """
    return get_redis()


@lru_cache()
def get_lock_manager() -> TenantLockManager:
    """Process-wide lock manager for the configured backend."""
    return build_lock_manager(settings.lock_backend)


def get_group_service(
    db: Session = Depends(get_database),
    lock_manager: TenantLockManager = Depends(get_lock_manager)
) -> GroupService:
    """GroupService bound to the request's database session."""
    service = GroupService(SQLAlchemyGroupStore(db), lock_manager)
    service.initialize({"hierarchy_max_depth": settings.hierarchy_max_depth})
    return service


def get_school_member_service(db: Session = Depends(get_database)) -> SchoolMemberService:
    service = SchoolMemberService(SQLAlchemyGroupStore(db))
    service.initialize()
    return service


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> int:
    """
    Identify the caller from the ``X-User-Id`` header.

    Session handling lives in the gateway in front of this API; it forwards
    the authenticated user's id.
    """
    if x_user_id is None or not x_user_id.strip().isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-User-Id header"
        )
    return int(x_user_id)


def require_school_admin(
    school_id: str,
    user_id: int = Depends(get_current_user_id),
    members: SchoolMemberService = Depends(get_school_member_service)
) -> int:
    """Allow only ADMIN and SUPER_ADMIN members of the school in the path."""
    if not members.is_admin(school_id, user_id):
        raise AuthorizationError(
            f"User {user_id} is not an administrator of school {school_id}",
            "SCHOOL_ADMIN"
        )
    return user_id
