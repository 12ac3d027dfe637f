"""
School Membership Service

Role lookups used by the access checks, and removal of users from a school
together with every group membership they hold there.
"""

import logging
from typing import Iterable, List, Optional

from learnsync.models.schools import SchoolRole
from learnsync.services.base import BaseService, ServiceResult, service_method, NotFoundError
from learnsync.services.domain.group_service import clean_user_ids
from learnsync.services.domain.stores import GroupStore, MemberRecord

logger = logging.getLogger(__name__)


class SchoolMemberService(BaseService):
    """Service for school membership and roles."""

    def __init__(self, store: GroupStore):
        super().__init__("SchoolMemberService")
        self.store = store

    def get_role(self, school_id: str, user_id: int) -> Optional[SchoolRole]:
        """Role of the user in the school, None if they are not a member."""
        return self.store.get_roles(school_id, [user_id]).get(user_id)

    def is_admin(self, school_id: str, user_id: int) -> bool:
        role = self.get_role(school_id, user_id)
        return role is not None and role.is_admin

    @service_method
    def list_members(self, school_id: str) -> ServiceResult[List[MemberRecord]]:
        return ServiceResult.success_result(self.store.list_school_members(school_id))

    @service_method
    def remove_members(self, school_id: str, user_ids: Iterable[int]) -> ServiceResult[int]:
        """
        Remove users from the school.

        Their memberships in every group of the school go with them. Fails
        without removing anyone if any user is not a school member.
        """
        user_ids = clean_user_ids(user_ids)

        roles = self.store.get_roles(school_id, user_ids)
        missing = [user_id for user_id in user_ids if user_id not in roles]
        if missing:
            raise NotFoundError("School member", missing)

        with self.store.atomic():
            memberships = self.store.delete_user_memberships(school_id, user_ids)
            removed = self.store.delete_school_members(school_id, user_ids)

        self.logger.info(
            f"Removed {removed} user(s) from school {school_id} and {memberships} group membership(s)"
        )
        return ServiceResult.success_result(removed, metadata={"group_memberships_removed": memberships})
