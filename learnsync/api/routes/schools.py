"""
School membership API endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends

from learnsync.api.errors import unwrap_or_raise
from learnsync.core.dependencies import get_school_member_service, require_school_admin
from learnsync.schemas.groups import UserIdsRequest
from learnsync.schemas.schools import MemberResponse, RemovedMembersResponse
from learnsync.services.domain import SchoolMemberService

router = APIRouter(dependencies=[Depends(require_school_admin)])


@router.get("", response_model=List[MemberResponse])
def list_school_members(
    school_id: str,
    service: SchoolMemberService = Depends(get_school_member_service)
):
    """Retrieve every member of the school with their role."""
    return [MemberResponse.from_record(m) for m in unwrap_or_raise(service.list_members(school_id))]


@router.delete("", response_model=RemovedMembersResponse)
def remove_school_members(
    school_id: str,
    request: UserIdsRequest,
    service: SchoolMemberService = Depends(get_school_member_service)
):
    """
    Remove users from the school together with all their group memberships.
    """
    result = service.remove_members(school_id, request.user_ids)
    removed = unwrap_or_raise(result)
    return RemovedMembersResponse(
        removed=removed,
        group_memberships_removed=result.metadata.get("group_memberships_removed", 0)
    )
