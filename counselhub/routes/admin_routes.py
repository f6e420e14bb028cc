from datetime import date
from types import SimpleNamespace

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from counselhub.auth.dependencies import require_admin
from counselhub.cache import CacheScope, build_key, cache, invalidate
from counselhub.core import config
from counselhub.database import get_db
from counselhub.models.appointment import Appointment
from counselhub.models.user import User
from counselhub.routes.common import (
    database_unavailable,
    ensure_database_ready,
    filter_by_start_date,
    get_appointment_or_404,
    load_appointment_detail,
    serialize_appointment,
    validate_date_range,
)
from counselhub.scheduling import booking
from counselhub.scheduling.status import AppointmentStatus, admin_override
from counselhub.schemas.appointment import (
    AdminUpdateAppointmentRequest,
    AppointmentAnalyticsResponse,
    AppointmentResponse,
    CounselorVolumeResponse,
    MessageResponse,
)

router = APIRouter(tags=['admin'])

TOP_COUNSELORS_LIMIT = 10


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    counselor_id: int | None = Query(default=None),
    student_id: int | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del current_user
    validate_date_range(start_date, end_date)
    ensure_database_ready()

    def compute() -> list[dict]:
        query = db.query(Appointment)
        if status_filter:
            query = query.filter(Appointment.status == status_filter.value)
        if counselor_id is not None:
            query = query.filter(Appointment.counselor_id == counselor_id)
        if student_id is not None:
            query = query.filter(Appointment.student_id == student_id)
        query = filter_by_start_date(query, start_date, end_date)
        appointments = query.order_by(Appointment.start_time.desc()).limit(config.ADMIN_LIST_LIMIT).all()
        return [serialize_appointment(item) for item in appointments]

    cache_key = build_key(
        CacheScope.ADMIN_APPOINTMENTS,
        params={
            'status': status_filter.value if status_filter else None,
            'counselor_id': counselor_id,
            'student_id': student_id,
            'start_date': start_date,
            'end_date': end_date,
        },
    )
    try:
        return cache.get_or_compute(cache_key, config.CACHE_TTL_SHORT_SECONDS, compute)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/appointments/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()
    return load_appointment_detail(db, appointment_id)


@router.patch('/appointments/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: AdminUpdateAppointmentRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        if data.status is not None:
            admin_override(appointment, data.status, current_user)
        if 'notes' in data.model_fields_set:
            appointment.notes = data.notes

        # Re-checks overlap whenever the result holds a slot, including a
        # terminal appointment being reopened.
        booking.reschedule(db, appointment, data.start_time, data.end_time)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    invalidate('appointment', appointment)
    return serialize_appointment(appointment)


@router.delete('/appointments/{appointment_id}', response_model=MessageResponse)
def delete_appointment(
    appointment_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        deleted = SimpleNamespace(
            id=appointment.id,
            student_id=appointment.student_id,
            counselor_id=appointment.counselor_id,
        )
        db.delete(appointment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    invalidate('appointment', deleted)
    return {'message': 'Appointment deleted successfully'}


@router.get('/analytics/appointments', response_model=AppointmentAnalyticsResponse)
def get_appointment_analytics(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del current_user
    validate_date_range(start_date, end_date)
    ensure_database_ready()

    def compute() -> dict:
        by_status_query = filter_by_start_date(
            db.query(Appointment.status, func.count(Appointment.id)),
            start_date,
            end_date,
        ).group_by(Appointment.status)

        appointment_count = func.count(Appointment.id).label('appointment_count')
        by_counselor_query = filter_by_start_date(
            db.query(Appointment.counselor_id, appointment_count),
            start_date,
            end_date,
        ).group_by(Appointment.counselor_id).order_by(
            appointment_count.desc(), Appointment.counselor_id.asc()
        ).limit(TOP_COUNSELORS_LIMIT)

        return AppointmentAnalyticsResponse(
            by_status={appointment_status: count for appointment_status, count in by_status_query.all()},
            top_counselors=[
                CounselorVolumeResponse(counselor_id=counselor_id, appointment_count=count)
                for counselor_id, count in by_counselor_query.all()
            ],
        ).model_dump(mode='json')

    cache_key = build_key(
        CacheScope.ADMIN_ANALYTICS,
        params={'start_date': start_date, 'end_date': end_date},
    )
    try:
        return cache.get_or_compute(cache_key, config.CACHE_TTL_ROLLUP_SECONDS, compute)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
