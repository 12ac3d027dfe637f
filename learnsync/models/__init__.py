"""
Database models package.

This module imports all SQLAlchemy models to ensure they are
registered with the database metadata for table creation.
"""

from learnsync.models.schools import School, User, SchoolMember, SchoolRole
from learnsync.models.groups import Group, GroupMember

__all__ = [
    # Tenant models
    "School",
    "User",
    "SchoolMember",
    "SchoolRole",

    # Group models
    "Group",
    "GroupMember",
]
