"""
Domain Services

Business logic for the school group subsystem.

Available Domain Services:
=========================

1. **GroupService** - Group hierarchy, cascading membership, reparenting
2. **SchoolMemberService** - School roles and member removal

Both work against a ``GroupStore`` so they can run on SQLAlchemy or on the
in-memory store from ``learnsync.mocks``.
"""

from .stores import GroupStore, GroupRecord, MemberRecord
from .sqlalchemy_store import SQLAlchemyGroupStore
from .group_service import GroupService, GroupDetail, GroupListing, ReparentOutcome, UNSET
from .school_service import SchoolMemberService

__all__ = [
    'GroupStore',
    'GroupRecord',
    'MemberRecord',
    'SQLAlchemyGroupStore',
    'GroupService',
    'GroupDetail',
    'GroupListing',
    'ReparentOutcome',
    'UNSET',
    'SchoolMemberService'
]
