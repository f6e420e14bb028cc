"""Errors raised by the scheduling core.

Each error carries the HTTP status code the API answers with; the translation
happens once, in the application's exception handler.
"""

from fastapi import status


class SchedulingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTimeRange(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST


class AccessDenied(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND


class AppointmentNotFound(NotFound):
    def __init__(self, message: str = "Appointment not found"):
        super().__init__(message)


class CounselorNotFound(NotFound):
    def __init__(self, message: str = "Counselor doesn't exist"):
        super().__init__(message)


class InvalidCounselor(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST


class BookingConflict(SchedulingError):
    status_code = status.HTTP_409_CONFLICT


class AppointmentClosed(SchedulingError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str):
        super().__init__(f"Appointment is {current} and can no longer be changed.")
        self.current = current


class InvalidTransition(SchedulingError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, target: str, allowed: tuple[str, ...] = ()):
        next_statuses = ", ".join(allowed) if allowed else "none"
        super().__init__(
            f"Cannot move an appointment from '{current}' to '{target}'. "
            f"Allowed next statuses: {next_statuses}."
        )
        self.current = current
        self.target = target
        self.allowed = allowed
