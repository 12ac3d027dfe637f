"""
Group management API endpoints.

This module provides REST API endpoints for group CRUD operations,
membership management, and group hierarchy operations within one school.
Every endpoint requires the caller to administer the school.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from kombu.exceptions import OperationalError

from learnsync.api.errors import unwrap_or_raise
from learnsync.core.dependencies import get_group_service, require_school_admin
from learnsync.schemas.groups import (
    GroupCreate, GroupUpdate, UserIdsRequest, GroupResponse, GroupSummaryResponse,
    GroupDetailResponse, GroupUpdateResponse, GroupMembershipResponse, MembershipResponse,
    TaskAcceptedResponse, GroupHierarchyResponse
)
from learnsync.schemas.schools import MemberResponse
from learnsync.services.domain import GroupService, UNSET
from learnsync.tasks.group_tasks import assign_members_task

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_school_admin)])


def _detail_response(detail) -> GroupDetailResponse:
    return GroupDetailResponse(
        **GroupResponse.model_validate(detail.group).model_dump(),
        members=[MemberResponse.from_record(m) for m in detail.members]
    )


def _membership_response(pairs, skipped: int = 0) -> GroupMembershipResponse:
    return GroupMembershipResponse(
        memberships=[MembershipResponse(user_id=user_id, group_id=group_id) for user_id, group_id in pairs],
        count=len(pairs),
        skipped=skipped
    )


@router.get("", response_model=List[GroupSummaryResponse])
def list_groups(
    school_id: str,
    service: GroupService = Depends(get_group_service)
):
    """
    Retrieve every group of the school with its direct member count.
    """
    listings = unwrap_or_raise(service.list_groups(school_id))
    return [
        GroupSummaryResponse(
            **GroupResponse.model_validate(listing.group).model_dump(),
            member_count=listing.member_count
        )
        for listing in listings
    ]


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
def create_group(
    school_id: str,
    group_data: GroupCreate,
    service: GroupService = Depends(get_group_service)
):
    """
    Create a new group, optionally nested under an existing parent.

    - **name**: Group name (required, not blank)
    - **parent_id**: Parent group in the same school
    """
    group = unwrap_or_raise(service.create_group(school_id, group_data.name, group_data.parent_id))
    return GroupResponse.model_validate(group)


@router.get("/{group_id}", response_model=GroupDetailResponse)
def get_group(
    school_id: str,
    group_id: int,
    service: GroupService = Depends(get_group_service)
):
    """
    Retrieve a group with its direct members.
    """
    return _detail_response(unwrap_or_raise(service.get_group(school_id, group_id)))


@router.put("/{group_id}", response_model=GroupUpdateResponse)
def update_group(
    school_id: str,
    group_id: int,
    group_data: GroupUpdate,
    service: GroupService = Depends(get_group_service)
):
    """
    Rename and/or move a group.

    Moving a group under one of its own descendants promotes the child on the
    path to that descendant to a root first; the ids of such children are
    returned in ``detached_group_ids``.
    """
    fields = group_data.model_dump(exclude_unset=True)
    outcome = unwrap_or_raise(service.update_group(
        school_id,
        group_id,
        name=fields.get("name"),
        parent_id=fields["parent_id"] if "parent_id" in fields else UNSET
    ))
    return GroupUpdateResponse(
        **GroupResponse.model_validate(outcome.group).model_dump(),
        detached_group_ids=outcome.detached_ids
    )


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(
    school_id: str,
    group_id: int,
    service: GroupService = Depends(get_group_service)
):
    """
    Delete a group. Its memberships are removed and its children become roots.
    """
    unwrap_or_raise(service.delete_group(school_id, group_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{group_id}/member", response_model=GroupDetailResponse)
def list_group_members(
    school_id: str,
    group_id: int,
    service: GroupService = Depends(get_group_service)
):
    """
    Retrieve the members of a group and of all its subgroups, each user once.
    """
    return _detail_response(unwrap_or_raise(service.resolve_members(school_id, group_id)))


@router.post(
    "/{group_id}/member",
    response_model=GroupMembershipResponse,
    status_code=status.HTTP_201_CREATED,
    responses={202: {"model": TaskAcceptedResponse}}
)
def add_group_members(
    school_id: str,
    group_id: int,
    request: UserIdsRequest,
    defer: bool = Query(False, description="Queue the assignment as a background task"),
    service: GroupService = Depends(get_group_service)
):
    """
    Add users to a group and to every ancestor of it.

    Existing memberships are skipped. With ``defer=true`` the assignment is
    queued for a worker and the task id is returned instead.
    """
    if defer:
        unwrap_or_raise(service.get_group(school_id, group_id))
        try:
            task = assign_members_task.delay(school_id, group_id, request.user_ids)
        except OperationalError as e:
            logger.error(f"Could not enqueue membership assignment for group {group_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Task queue unavailable"
            )
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=TaskAcceptedResponse(task_id=task.id).model_dump()
        )

    result = service.assign_members(school_id, group_id, request.user_ids)
    created = unwrap_or_raise(result)
    return _membership_response(created, skipped=result.metadata.get("skipped", 0))


@router.delete("/{group_id}/member", response_model=GroupMembershipResponse)
def remove_group_members(
    school_id: str,
    group_id: int,
    request: UserIdsRequest,
    service: GroupService = Depends(get_group_service)
):
    """
    Remove users from this group only. Ancestor and subgroup memberships stay.
    """
    removed = unwrap_or_raise(service.unassign_members(school_id, group_id, request.user_ids))
    return _membership_response(removed)


@router.get("/{group_id}/hierarchy", response_model=GroupHierarchyResponse)
def get_group_hierarchy(
    school_id: str,
    group_id: int,
    service: GroupService = Depends(get_group_service)
):
    """
    Retrieve the group's ancestor chain (root first) and its nested subgroups.
    """
    return unwrap_or_raise(service.get_hierarchy(school_id, group_id))
