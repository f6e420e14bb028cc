from datetime import date, datetime

from pydantic import BaseModel, field_validator

from counselhub.scheduling.status import AppointmentStatus

MAX_APPOINTMENT_NOTES_LENGTH = 1000


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class BookAppointmentRequest(BaseModel):
    counselor_id: int
    start_time: datetime
    end_time: datetime
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateAppointmentRequest(BaseModel):
    """Counselor edit. Omitted fields are left alone; ``notes: null`` clears the notes."""
    start_time: datetime | None = None
    end_time: datetime | None = None
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class AdminUpdateAppointmentRequest(UpdateAppointmentRequest):
    status: AppointmentStatus | None = None


class CounselorProfileSummary(BaseModel):
    office: str | None = None
    phone: str | None = None
    department: str | None = None

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    id: int
    email: str
    full_name: str | None = None

    class Config:
        from_attributes = True


class CounselorSummary(UserSummary):
    counselor_profile: CounselorProfileSummary | None = None


class AppointmentResponse(BaseModel):
    id: int
    student_id: int
    counselor_id: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    student: UserSummary | None = None
    counselor: CounselorSummary | None = None

    class Config:
        from_attributes = True


class BookedSlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime

    class Config:
        from_attributes = True


class CounselorSlotsResponse(BaseModel):
    counselor_id: int
    date: date
    booked_slots: list[BookedSlotResponse]


class CounselorResponse(BaseModel):
    id: int
    email: str
    full_name: str | None = None
    office: str | None = None
    phone: str | None = None
    department: str | None = None


class DashboardStatsResponse(BaseModel):
    total_appointments: int
    pending_appointments: int
    confirmed_appointments: int
    today_appointments: int


class CounselorVolumeResponse(BaseModel):
    counselor_id: int
    appointment_count: int


class AppointmentAnalyticsResponse(BaseModel):
    by_status: dict[str, int]
    top_counselors: list[CounselorVolumeResponse]


class MessageResponse(BaseModel):
    message: str
