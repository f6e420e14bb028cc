from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from counselhub.auth.dependencies import require_student
from counselhub.cache import CacheScope, build_key, cache, invalidate
from counselhub.core import config
from counselhub.database import get_db
from counselhub.models.appointment import Appointment
from counselhub.models.user import COUNSELOR_ROLE, CounselorProfile, User
from counselhub.routes.common import (
    database_unavailable,
    ensure_database_ready,
    filter_by_start_date,
    load_appointment_detail,
    serialize_appointment,
    transition_appointment,
    validate_date_range,
)
from counselhub.scheduling import booking
from counselhub.scheduling.errors import AccessDenied
from counselhub.scheduling.status import AppointmentStatus
from counselhub.schemas.appointment import (
    AppointmentResponse,
    BookAppointmentRequest,
    BookedSlotResponse,
    CounselorResponse,
    CounselorSlotsResponse,
)

router = APIRouter(tags=['student'])


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.book_appointment(
            db,
            student_id=current_user.id,
            counselor_id=data.counselor_id,
            start_time=data.start_time,
            end_time=data.end_time,
            notes=data.notes,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    invalidate('appointment', appointment)
    return serialize_appointment(appointment)


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_my_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    validate_date_range(start_date, end_date)
    ensure_database_ready()

    def compute() -> list[dict]:
        query = db.query(Appointment).filter(Appointment.student_id == current_user.id)
        if status_filter:
            query = query.filter(Appointment.status == status_filter.value)
        query = filter_by_start_date(query, start_date, end_date)
        return [serialize_appointment(item) for item in query.order_by(Appointment.start_time.asc()).all()]

    cache_key = build_key(
        CacheScope.STUDENT_APPOINTMENTS,
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
def get_my_appointment(
    appointment_id: int,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = load_appointment_detail(db, appointment_id)
    if appointment['student_id'] != current_user.id:
        raise AccessDenied('Access denied')
    return appointment


@router.patch('/appointments/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_my_appointment(
    appointment_id: int,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    return transition_appointment(db, appointment_id, AppointmentStatus.CANCELLED, current_user)


@router.get('/counselors', response_model=list[CounselorResponse])
def list_counselors(
    department: str | None = Query(default=None),
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    del current_user
    normalized_department = department.strip() if department and department.strip() else None

    def compute() -> list[dict]:
        query = db.query(User, CounselorProfile).outerjoin(
            CounselorProfile, CounselorProfile.user_id == User.id
        ).filter(User.role == COUNSELOR_ROLE)
        if normalized_department:
            query = query.filter(CounselorProfile.department == normalized_department)

        return [
            CounselorResponse(
                id=user.id,
                email=user.email,
                full_name=user.full_name,
                office=profile.office if profile else None,
                phone=profile.phone if profile else None,
                department=profile.department if profile else None,
            ).model_dump(mode='json')
            for user, profile in query.order_by(User.full_name.asc(), User.id.asc()).all()
        ]

    cache_key = build_key(CacheScope.COUNSELOR_DIRECTORY, params={'department': normalized_department})
    try:
        return cache.get_or_compute(cache_key, config.CACHE_TTL_DEFAULT_SECONDS, compute)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/counselors/{counselor_id}/slots', response_model=CounselorSlotsResponse)
def list_counselor_booked_slots(
    counselor_id: int,
    day: date = Query(..., alias='date'),
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    def compute() -> dict:
        booking.get_counselor(db, counselor_id)
        appointments = booking.list_booked_slots(db, counselor_id, day)
        return CounselorSlotsResponse(
            counselor_id=counselor_id,
            date=day,
            booked_slots=[BookedSlotResponse.model_validate(item) for item in appointments],
        ).model_dump(mode='json')

    cache_key = build_key(CacheScope.COUNSELOR_SLOTS, counselor_id, {'date': day.isoformat()})
    try:
        return cache.get_or_compute(cache_key, config.CACHE_TTL_DEFAULT_SECONDS, compute)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
