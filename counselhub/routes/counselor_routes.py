from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from counselhub.auth.dependencies import require_counselor
from counselhub.cache import CacheScope, build_key, cache, invalidate
from counselhub.core import config
from counselhub.database import get_db
from counselhub.models.appointment import Appointment, utcnow
from counselhub.models.user import STUDENT_ROLE, User
from counselhub.routes.common import (
    database_unavailable,
    ensure_database_ready,
    filter_by_start_date,
    get_appointment_or_404,
    load_appointment_detail,
    serialize_appointment,
    transition_appointment,
    validate_date_range,
)
from counselhub.scheduling import booking
from counselhub.scheduling.errors import AccessDenied, AppointmentClosed
from counselhub.scheduling.status import AppointmentStatus, ensure_owner, is_terminal
from counselhub.schemas.appointment import (
    AppointmentResponse,
    DashboardStatsResponse,
    UpdateAppointmentRequest,
)

router = APIRouter(tags=['counselor'])

MAX_UPCOMING_LIMIT = 50


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_my_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    validate_date_range(start_date, end_date)
    ensure_database_ready()

    def compute() -> list[dict]:
        query = db.query(Appointment).filter(Appointment.counselor_id == current_user.id)
        if status_filter:
            query = query.filter(Appointment.status == status_filter.value)
        query = filter_by_start_date(query, start_date, end_date)
        return [serialize_appointment(item) for item in query.order_by(Appointment.start_time.asc()).all()]

    cache_key = build_key(
        CacheScope.COUNSELOR_APPOINTMENTS,
        current_user.id,
        {
            'status': status_filter.value if status_filter else None,
            'start_date': start_date,
            'end_date': end_date,
        },
    )
    try:
        return cache.get_or_compute(cache_key, config.CACHE_TTL_DEFAULT_SECONDS, compute)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/appointments/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = load_appointment_detail(db, appointment_id)
    if appointment['counselor_id'] != current_user.id:
        raise AccessDenied('Access denied')
    return appointment


@router.patch('/appointments/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    return transition_appointment(db, appointment_id, AppointmentStatus.CONFIRMED, current_user)


@router.patch('/appointments/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    return transition_appointment(db, appointment_id, AppointmentStatus.COMPLETED, current_user)


@router.patch('/appointments/{appointment_id}/no-show', response_model=AppointmentResponse)
def mark_no_show(
    appointment_id: int,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    return transition_appointment(db, appointment_id, AppointmentStatus.NO_SHOW, current_user)


@router.patch('/appointments/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    return transition_appointment(db, appointment_id, AppointmentStatus.CANCELLED, current_user)


@router.patch('/appointments/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_owner(appointment, current_user)
        if is_terminal(appointment.status):
            raise AppointmentClosed(appointment.status)

        if 'notes' in data.model_fields_set:
            appointment.notes = data.notes

        if data.start_time or data.end_time:
            booking.reschedule(db, appointment, data.start_time, data.end_time)
        else:
            appointment.updated_at = utcnow()
            db.commit()
            db.refresh(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    invalidate('appointment', appointment)
    return serialize_appointment(appointment)


@router.get('/dashboard/stats', response_model=DashboardStatsResponse)
def get_dashboard_stats(
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    today = utcnow().date()

    def compute() -> dict:
        day_start = datetime.combine(today, time.min)
        day_end = day_start + timedelta(days=1)
        counts = dict(
            db.query(Appointment.status, func.count(Appointment.id))
            .filter(Appointment.counselor_id == current_user.id)
            .group_by(Appointment.status)
            .all()
        )
        today_count = db.query(func.count(Appointment.id)).filter(
            Appointment.counselor_id == current_user.id,
            Appointment.start_time >= day_start,
            Appointment.start_time < day_end,
        ).scalar()

        return DashboardStatsResponse(
            total_appointments=sum(counts.values()),
            pending_appointments=counts.get(AppointmentStatus.PENDING.value, 0),
            confirmed_appointments=counts.get(AppointmentStatus.CONFIRMED.value, 0),
            today_appointments=today_count or 0,
        ).model_dump(mode='json')

    cache_key = build_key(CacheScope.COUNSELOR_STATS, current_user.id, {'day': today})
    try:
        return cache.get_or_compute(cache_key, config.CACHE_TTL_DEFAULT_SECONDS, compute)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/dashboard/upcoming', response_model=list[AppointmentResponse])
def list_upcoming_appointments(
    limit: int = Query(default=10, ge=1, le=MAX_UPCOMING_LIMIT),
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = db.query(Appointment).filter(
            Appointment.counselor_id == current_user.id,
            Appointment.start_time >= utcnow(),
            Appointment.status.in_(booking.ACTIVE_STATUS_VALUES),
        ).order_by(Appointment.start_time.asc()).limit(limit).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [serialize_appointment(item) for item in appointments]


@router.get('/students/{student_id}/appointments', response_model=list[AppointmentResponse])
def list_student_appointments(
    student_id: int,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        student = db.query(User).filter(User.id == student_id, User.role == STUDENT_ROLE).first()
        if student is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Student not found')

        appointments = db.query(Appointment).filter(
            Appointment.student_id == student_id,
            Appointment.counselor_id == current_user.id,
        ).order_by(Appointment.start_time.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [serialize_appointment(item) for item in appointments]
