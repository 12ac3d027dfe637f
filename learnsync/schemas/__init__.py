"""
Pydantic schemas package.

This module imports all Pydantic schemas for API request/response validation
and provides a centralized place to access all schema definitions.
"""

from learnsync.schemas.schools import MemberResponse, RemovedMembersResponse
from learnsync.schemas.groups import (
    GroupBase, GroupCreate, GroupUpdate, UserIdsRequest,
    GroupResponse, GroupSummaryResponse, GroupDetailResponse, GroupUpdateResponse,
    MembershipResponse, GroupMembershipResponse, TaskAcceptedResponse, GroupHierarchyResponse
)

__all__ = [
    # School schemas
    "MemberResponse", "RemovedMembersResponse",

    # Group schemas
    "GroupBase", "GroupCreate", "GroupUpdate", "UserIdsRequest",
    "GroupResponse", "GroupSummaryResponse", "GroupDetailResponse", "GroupUpdateResponse",
    "MembershipResponse", "GroupMembershipResponse", "TaskAcceptedResponse", "GroupHierarchyResponse",
]
