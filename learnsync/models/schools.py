"""
School, User and school membership SQLAlchemy models.

A school is the tenant: every group, membership and role is scoped to one.
"""

import enum
import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from learnsync.core.database import Base


class SchoolRole(str, enum.Enum):
    """Role a user holds inside one school."""
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"

    @property
    def is_admin(self) -> bool:
        return self in (SchoolRole.SUPER_ADMIN, SchoolRole.ADMIN)


class School(Base):
    """School tenant."""
    __tablename__ = "schools"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    members = relationship("SchoolMember", back_populates="school", cascade="all, delete-orphan")
    groups = relationship("Group", back_populates="school", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<School(id='{self.id}', name='{self.name}')>"


class User(Base):
    """
    Platform user.

    A user can belong to several schools, holding one role in each.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=False)
    avatar_url = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)

    schools = relationship("SchoolMember", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class SchoolMember(Base):
    """Association between a user and a school, carrying the user's role."""
    __tablename__ = "school_members"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    school_id = Column(String(36), ForeignKey("schools.id", ondelete="CASCADE"), primary_key=True, index=True)
    role = Column(Enum(SchoolRole, name="school_role"), nullable=False, default=SchoolRole.STUDENT)
    joined_at = Column(DateTime, default=func.now(), nullable=False)

    user = relationship("User", back_populates="schools")
    school = relationship("School", back_populates="members")

    def __repr__(self):
        return f"<SchoolMember(user_id={self.user_id}, school_id='{self.school_id}', role='{self.role}')>"
