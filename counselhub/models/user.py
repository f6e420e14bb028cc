"""User model definitions."""

from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from counselhub.database import Base

STUDENT_ROLE = "student"
COUNSELOR_ROLE = "counselor"
ADMIN_ROLE = "admin"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    hashed_password = Column(String, nullable=True)
    role = Column(String)  # student/counselor/admin

    counselor_profile = relationship("CounselorProfile", back_populates="user", uselist=False)


class CounselorProfile(Base):
    """Office details a student sees when choosing a counselor."""
    __tablename__ = "counselor_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    office = Column(String)
    phone = Column(String)
    department = Column(String, index=True)

    user = relationship("User", back_populates="counselor_profile")
