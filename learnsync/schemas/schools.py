"""
Pydantic schemas for school members.
"""

from pydantic import BaseModel
from typing import Optional


class MemberResponse(BaseModel):
    """User as seen from inside one school."""
    id: int
    full_name: str
    email: str
    avatar_url: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def from_record(cls, record) -> 'MemberResponse':
        """Build from a ``MemberRecord``."""
        return cls(
            id=record.user_id,
            full_name=record.full_name,
            email=record.email,
            avatar_url=record.avatar_url,
            role=record.role.value if record.role is not None else None
        )


class RemovedMembersResponse(BaseModel):
    """Result of removing users from a school."""
    removed: int
    group_memberships_removed: int
