from datetime import date, datetime, time, timedelta

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from counselhub.cache import CacheScope, build_key, cache, invalidate
from counselhub.core import config
from counselhub.database import ensure_appointment_schema
from counselhub.models.appointment import Appointment
from counselhub.models.user import User
from counselhub.scheduling.errors import AppointmentNotFound
from counselhub.scheduling.status import AppointmentStatus, apply_transition
from counselhub.schemas.appointment import AppointmentResponse

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def validate_date_range(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='start_date must be on or before end_date.',
        )


def filter_by_start_date(query: Query, start_date: date | None, end_date: date | None) -> Query:
    # end_date is inclusive of the whole day
    if start_date:
        query = query.filter(Appointment.start_time >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(Appointment.start_time < datetime.combine(end_date + timedelta(days=1), time.min))
    return query


def serialize_appointment(appointment: Appointment) -> dict:
    return AppointmentResponse.model_validate(appointment).model_dump(mode='json')


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise AppointmentNotFound()
    return appointment


def load_appointment_detail(db: Session, appointment_id: int) -> dict:
    """Read-through detail lookup shared by every role; callers check access on the result."""
    def compute() -> dict | None:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        return serialize_appointment(appointment) if appointment else None

    try:
        data = cache.get_or_compute(
            build_key(CacheScope.APPOINTMENT, appointment_id),
            config.CACHE_TTL_DEFAULT_SECONDS,
            compute,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if data is None:
        raise AppointmentNotFound()
    return data


def transition_appointment(
    db: Session,
    appointment_id: int,
    target: AppointmentStatus,
    actor: User,
) -> dict:
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        apply_transition(appointment, target, actor)
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    invalidate('appointment', appointment)
    return serialize_appointment(appointment)
