"""
Group and group membership SQLAlchemy models.

Groups form a forest per school through ``parent_id``. Membership rows are
independent per (user, group) pair; cascading assignment up the ancestor
chain is done by the group service, not by the database.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from learnsync.core.database import Base


class Group(Base):
    """
    Named node in a school's group forest.
    """
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    school_id = Column(String(36), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)

    # Group hierarchy, children become roots when their parent is deleted
    parent_id = Column(Integer, ForeignKey("groups.id", ondelete="SET NULL"), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    school = relationship("School", back_populates="groups")
    memberships = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self):
        return f"<Group(id={self.id}, name='{self.name}', parent_id={self.parent_id})>"


class GroupMember(Base):
    """Direct membership of a user in one group."""
    __tablename__ = "group_members"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True, index=True)
    added_at = Column(DateTime, default=func.now(), nullable=False)

    group = relationship("Group", back_populates="memberships")
    user = relationship("User")

    def __repr__(self):
        return f"<GroupMember(user_id={self.user_id}, group_id={self.group_id})>"
