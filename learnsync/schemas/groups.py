"""
Pydantic schemas for groups and group membership.

This module defines request/response schemas for the group endpoints,
providing validation and serialization.
"""

from pydantic import BaseModel, StrictInt, validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from learnsync.schemas.schools import MemberResponse


class GroupBase(BaseModel):
    """Base Group schema with common attributes."""
    name: str


# Request schemas (for creating/updating)
class GroupCreate(GroupBase):
    """Schema for creating a new group."""
    parent_id: Optional[int] = None

    @validator('name')
    def name_not_blank(cls, v):
        """Validate the group name is not blank."""
        if not v.strip():
            raise ValueError('Group name must not be empty')
        return v.strip()


class GroupUpdate(BaseModel):
    """
    Schema for updating an existing group.

    ``parent_id`` left out keeps the current parent; an explicit null
    makes the group a root.
    """
    name: Optional[str] = None
    parent_id: Optional[int] = None


class UserIdsRequest(BaseModel):
    """Schema for adding/removing several users at once."""
    user_ids: List[StrictInt]


# Response schemas
class GroupResponse(GroupBase):
    """Schema for group API responses."""
    id: int
    school_id: str
    parent_id: Optional[int]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupSummaryResponse(GroupResponse):
    """Group with its direct member count."""
    member_count: int = 0


class GroupDetailResponse(GroupResponse):
    """Group with a member list (direct or resolved, depending on the endpoint)."""
    members: List[MemberResponse] = []

    @validator('members', always=True, pre=False)
    def ensure_members_list(cls, v):
        """Ensure members is always a list, never None."""
        return v if v is not None else []


class GroupUpdateResponse(GroupResponse):
    """Updated group and the children that were promoted to roots."""
    detached_group_ids: List[int] = []


class MembershipResponse(BaseModel):
    """One (user, group) membership row."""
    user_id: int
    group_id: int


class GroupMembershipResponse(BaseModel):
    """Schema for group membership operation responses."""
    memberships: List[MembershipResponse]
    count: int
    skipped: int = 0


class TaskAcceptedResponse(BaseModel):
    """Background job handed to the worker queue."""
    task_id: str
    status: str = "queued"


class GroupHierarchyResponse(BaseModel):
    """Ancestor chain (root first) and nested child tree of a group."""
    group: Dict[str, Any]
    parent_chain: List[Dict[str, Any]]
    child_tree: List[Dict[str, Any]]
