"""
Group membership jobs executed by Celery workers.

Large assignments (a whole class list into a nested group) are queued from the
API and run here. Assignment is idempotent, so a redelivered or retried task
only creates the memberships that are still missing.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List

from learnsync.config.celery_config import celery_app
from learnsync.config.settings import settings
from learnsync.core.database import SessionLocal
from learnsync.core.locks import build_lock_manager
from learnsync.services.base import ServiceResult
from learnsync.services.domain import GroupService, SQLAlchemyGroupStore

logger = logging.getLogger(__name__)


@contextmanager
def group_service_scope() -> Iterator[GroupService]:
    """GroupService on a fresh database session, closed afterwards."""
    db = SessionLocal()
    try:
        service = GroupService(SQLAlchemyGroupStore(db), build_lock_manager())
        service.initialize({"hierarchy_max_depth": settings.hierarchy_max_depth})
        yield service
    finally:
        db.close()


def _failure(result: ServiceResult, **extra: Any) -> Dict[str, Any]:
    return {
        "success": False,
        "error_code": result.error.error_code,
        "message": result.error.message,
        "details": result.error.details,
        **extra
    }


@celery_app.task(bind=True, name="groups.assign_members")
def assign_members_task(self, school_id: str, group_id: int, user_ids: List[int]) -> Dict[str, Any]:
    """
    Assign users to a group and its ancestors.

    Retried when the database or lock backend fails; validation and
    not-found errors are reported in the result without retrying.

    Args:
        school_id: School the group belongs to
        group_id: Target group
        user_ids: Users to assign

    Returns:
        Dict containing the created memberships and the number skipped
    """
    start_time = datetime.now(timezone.utc)

    with group_service_scope() as service:
        result = service.assign_members(school_id, group_id, user_ids)

    if not result.success:
        if result.error.error_code == "DEPENDENCY_FAILURE":
            logger.warning(
                f"Membership assignment for group {group_id} failed "
                f"(attempt {self.request.retries + 1}), retrying: {result.error.message}"
            )
            raise self.retry(
                exc=result.error,
                countdown=settings.task_retry_countdown,
                max_retries=settings.task_max_retries
            )
        logger.error(f"Membership assignment for group {group_id} rejected: {result.error.message}")
        return _failure(result, school_id=school_id, group_id=group_id, task_id=self.request.id)

    operation_time_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    logger.info(
        f"Assigned {len(user_ids)} user(s) to group {group_id}: "
        f"{len(result.data)} created, {result.metadata['skipped']} skipped ({operation_time_ms:.2f}ms)"
    )

    return {
        "success": True,
        "school_id": school_id,
        "group_id": group_id,
        "created": [list(pair) for pair in result.data],
        "skipped": result.metadata["skipped"],
        "ancestor_chain": result.metadata["ancestor_chain"],
        "operation_time_ms": operation_time_ms,
        "task_id": self.request.id
    }


@celery_app.task(bind=True, name="groups.verify_forest")
def verify_forest_task(self, school_id: str) -> Dict[str, Any]:
    """
    Audit a school's groups for parent-pointer cycles.

    Returns:
        Dict with group and root counts, or the ids of the cycle found
    """
    with group_service_scope() as service:
        result = service.verify_forest(school_id)

    if not result.success:
        if result.error.error_code == "DEPENDENCY_FAILURE":
            raise self.retry(
                exc=result.error,
                countdown=settings.task_retry_countdown,
                max_retries=settings.task_max_retries
            )
        return _failure(result, school_id=school_id, task_id=self.request.id)

    return {"success": True, "school_id": school_id, **result.data, "task_id": self.request.id}
