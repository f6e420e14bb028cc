"""Appointment model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from counselhub.database import Base


def utcnow() -> datetime:
    # Naive UTC, matching the naive DateTime columns.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Appointment(Base):
    """Represents a counseling session between one student and one counselor."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_counselor_start", "counselor_id", "start_time"),
        Index("idx_appointments_student_start", "student_id", "start_time"),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    counselor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    notes = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    student = relationship("User", foreign_keys=[student_id], lazy="joined")
    counselor = relationship("User", foreign_keys=[counselor_id], lazy="joined")
