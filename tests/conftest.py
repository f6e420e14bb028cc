import fnmatch
import os
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from counselhub import cache as cache_module  # noqa: E402
from counselhub.core import config  # noqa: E402
from counselhub.database import Base  # noqa: E402
from counselhub.models.appointment import Appointment  # noqa: E402
from counselhub.models.user import (  # noqa: E402
    ADMIN_ROLE,
    COUNSELOR_ROLE,
    STUDENT_ROLE,
    CounselorProfile,
    User,
)


class FakeRedis:
    """In-memory stand-in for the handful of redis commands the cache issues."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                deleted += 1
        return deleted

    def scan_iter(self, match=None, count=None):
        return iter([key for key in list(self.store) if match is None or fnmatch.fnmatchcase(key, match)])


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> FakeRedis:
    fake = FakeRedis()
    monkeypatch.setattr(config, 'CACHE_ENABLED', True)
    monkeypatch.setattr(cache_module.cache, 'redis_client', fake)
    monkeypatch.setattr(cache_module.cache, 'unavailable_until', 0.0)
    return fake


@pytest.fixture(autouse=True)
def skip_schema_migration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('counselhub.routes.common.ensure_appointment_schema', lambda: None)


@pytest.fixture
def db_session():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def users(db_session) -> SimpleNamespace:
    student = User(email='student@example.edu', full_name='Sam Student', role=STUDENT_ROLE)
    other_student = User(email='other@example.edu', full_name='Olive Other', role=STUDENT_ROLE)
    counselor = User(email='kim@example.edu', full_name='Kim Counselor', role=COUNSELOR_ROLE)
    other_counselor = User(email='lee@example.edu', full_name='Lee Counselor', role=COUNSELOR_ROLE)
    admin = User(email='admin@example.edu', full_name='Ada Admin', role=ADMIN_ROLE)
    db_session.add_all([student, other_student, counselor, other_counselor, admin])
    db_session.flush()
    db_session.add_all([
        CounselorProfile(user_id=counselor.id, office='Room 101', phone='555-0101', department='CCS'),
        CounselorProfile(user_id=other_counselor.id, office='Room 202', phone='555-0202', department='COE'),
    ])
    db_session.commit()
    for user in (student, other_student, counselor, other_counselor, admin):
        db_session.refresh(user)

    return SimpleNamespace(
        student=student,
        other_student=other_student,
        counselor=counselor,
        other_counselor=other_counselor,
        admin=admin,
    )


@pytest.fixture
def make_appointment(db_session):
    def _make_appointment(
        student: User,
        counselor: User,
        start_time: datetime,
        end_time: datetime,
        status: str = 'pending',
        notes: str | None = None,
    ) -> Appointment:
        appointment = Appointment(
            student_id=student.id,
            counselor_id=counselor.id,
            start_time=start_time,
            end_time=end_time,
            status=status,
            notes=notes,
        )
        db_session.add(appointment)
        db_session.commit()
        db_session.refresh(appointment)
        return appointment

    return _make_appointment
