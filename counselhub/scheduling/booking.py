"""Counselor booking validation.

Ranges are half-open: ``[start, end)``. Two ranges overlap iff
``a_start < b_end and b_start < a_end``, so back-to-back sessions are allowed.
Only pending and confirmed appointments hold a slot.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from threading import Lock
from typing import Iterator

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from counselhub.models.appointment import Appointment
from counselhub.models.user import COUNSELOR_ROLE, User
from counselhub.scheduling.errors import (
    BookingConflict,
    CounselorNotFound,
    InvalidCounselor,
    InvalidTimeRange,
)
from counselhub.scheduling.status import ACTIVE_STATUSES, INITIAL_STATUS, is_active

logger = logging.getLogger(__name__)

ACTIVE_STATUS_VALUES = sorted(status.value for status in ACTIVE_STATUSES)

_registry_lock = Lock()
_counselor_locks: dict[int, Lock] = {}


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def validate_time_range(start_time: datetime, end_time: datetime) -> tuple[datetime, datetime]:
    start_time = to_naive_utc(start_time)
    end_time = to_naive_utc(end_time)
    if start_time >= end_time:
        raise InvalidTimeRange('Invalid time range')
    return start_time, end_time


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def find_conflict(
    db: Session,
    counselor_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_id: int | None = None,
) -> Appointment | None:
    query = db.query(Appointment).filter(
        Appointment.counselor_id == counselor_id,
        Appointment.status.in_(ACTIVE_STATUS_VALUES),
        or_(
            # existing range contains the proposed start
            and_(Appointment.start_time <= start_time, Appointment.end_time > start_time),
            # existing range contains the proposed end
            and_(Appointment.start_time < end_time, Appointment.end_time >= end_time),
            # proposed range contains the existing one
            and_(Appointment.start_time >= start_time, Appointment.end_time <= end_time),
        ),
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.order_by(Appointment.start_time.asc()).first()


def ensure_slot_available(
    db: Session,
    counselor_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_id: int | None = None,
) -> None:
    conflict = find_conflict(db, counselor_id, start_time, end_time, exclude_id=exclude_id)
    if conflict is None:
        return

    logger.info(
        'Booking for counselor %s at %s-%s conflicts with appointment %s',
        counselor_id, start_time, end_time, conflict.id,
    )
    raise BookingConflict(
        'Time slot not available: '
        f'{conflict.start_time.isoformat()} to {conflict.end_time.isoformat()} is already booked.'
    )


def _lock_for(counselor_id: int) -> Lock:
    lock = _counselor_locks.get(counselor_id)
    if lock is not None:
        return lock

    with _registry_lock:
        return _counselor_locks.setdefault(counselor_id, Lock())


@contextmanager
def counselor_booking_lock(db: Session, counselor_id: int) -> Iterator[None]:
    """Serialize check-then-write sequences for one counselor.

    The thread lock covers workers in this process; the row lock on the
    counselor's user row covers other processes on databases that support
    ``SELECT ... FOR UPDATE``. Commit before leaving the block.
    """
    with _lock_for(counselor_id):
        db.query(User.id).filter(User.id == counselor_id).with_for_update().first()
        yield


def get_counselor(db: Session, counselor_id: int) -> User:
    counselor = db.query(User).filter(User.id == counselor_id).first()
    if counselor is None:
        raise CounselorNotFound()
    if counselor.role != COUNSELOR_ROLE:
        raise InvalidCounselor('Selected user is not a counselor')
    return counselor


def book_appointment(
    db: Session,
    student_id: int,
    counselor_id: int,
    start_time: datetime,
    end_time: datetime,
    notes: str | None = None,
) -> Appointment:
    start_time, end_time = validate_time_range(start_time, end_time)
    get_counselor(db, counselor_id)

    with counselor_booking_lock(db, counselor_id):
        try:
            ensure_slot_available(db, counselor_id, start_time, end_time)
        except BookingConflict:
            db.rollback()
            raise

        appointment = Appointment(
            student_id=student_id,
            counselor_id=counselor_id,
            start_time=start_time,
            end_time=end_time,
            notes=notes,
            status=INITIAL_STATUS.value,
        )
        db.add(appointment)
        db.commit()

    db.refresh(appointment)
    logger.info(
        'Student %s booked appointment %s with counselor %s',
        student_id, appointment.id, counselor_id,
    )
    return appointment


def commit_checked(db: Session, appointment: Appointment) -> Appointment:
    """Commit pending changes to ``appointment``, re-checking overlap if it holds a slot."""
    validate_time_range(appointment.start_time, appointment.end_time)

    if not is_active(appointment.status):
        db.commit()
        db.refresh(appointment)
        return appointment

    with counselor_booking_lock(db, appointment.counselor_id):
        try:
            ensure_slot_available(
                db,
                appointment.counselor_id,
                appointment.start_time,
                appointment.end_time,
                exclude_id=appointment.id,
            )
        except BookingConflict:
            db.rollback()
            raise
        db.commit()

    db.refresh(appointment)
    return appointment


def reschedule(
    db: Session,
    appointment: Appointment,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> Appointment:
    new_start = to_naive_utc(start_time) if start_time else appointment.start_time
    new_end = to_naive_utc(end_time) if end_time else appointment.end_time
    validate_time_range(new_start, new_end)

    appointment.start_time = new_start
    appointment.end_time = new_end
    return commit_checked(db, appointment)


def list_booked_slots(db: Session, counselor_id: int, day: date) -> list[Appointment]:
    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)
    return db.query(Appointment).filter(
        Appointment.counselor_id == counselor_id,
        Appointment.status.in_(ACTIVE_STATUS_VALUES),
        Appointment.start_time >= day_start,
        Appointment.start_time < day_end,
    ).order_by(Appointment.start_time.asc()).all()
