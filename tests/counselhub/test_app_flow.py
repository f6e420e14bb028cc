import pytest
from fastapi.testclient import TestClient

from counselhub.auth.jwt_handler import create_access_token
from counselhub.database import get_db
from counselhub.main import app


@pytest.fixture
def client(db_session):
    app.dependency_overrides[get_db] = lambda: db_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_header(user) -> dict:
    return {'Authorization': f'Bearer {create_access_token(user.id, user.role)}'}


def book(client, user, counselor, start: str, end: str):
    return client.post(
        '/student/appointments',
        json={'counselor_id': counselor.id, 'start_time': start, 'end_time': end},
        headers=auth_header(user),
    )


def test_booking_examples_end_to_end(client, users) -> None:
    first = book(client, users.student, users.counselor, '2030-03-04T10:00:00', '2030-03-04T11:00:00')
    assert first.status_code == 201

    overlapping = book(client, users.other_student, users.counselor, '2030-03-04T10:30:00', '2030-03-04T11:30:00')
    assert overlapping.status_code == 409
    assert 'Time slot not available' in overlapping.json()['detail']

    adjacent = book(client, users.other_student, users.counselor, '2030-03-04T11:00:00', '2030-03-04T12:00:00')
    assert adjacent.status_code == 201

    cancelled = client.patch(
        f"/student/appointments/{first.json()['id']}/cancel",
        headers=auth_header(users.student),
    )
    assert cancelled.status_code == 200
    assert cancelled.json()['status'] == 'cancelled'

    rebooked = book(client, users.other_student, users.counselor, '2030-03-04T10:00:00', '2030-03-04T11:00:00')
    assert rebooked.status_code == 201


def test_invalid_range_is_a_validation_error(client, users) -> None:
    response = book(client, users.student, users.counselor, '2030-03-04T11:00:00', '2030-03-04T10:00:00')

    assert response.status_code == 400
    assert response.json() == {'detail': 'Invalid time range'}


def test_missing_end_time_is_a_validation_error(client, users) -> None:
    response = client.post(
        '/student/appointments',
        json={'counselor_id': users.counselor.id, 'start_time': '2030-03-04T10:00:00'},
        headers=auth_header(users.student),
    )

    assert response.status_code == 400
    assert response.json()['detail'].startswith('end_time:')


def test_overlong_notes_are_a_validation_error(client, users) -> None:
    response = client.post(
        '/student/appointments',
        json={
            'counselor_id': users.counselor.id,
            'start_time': '2030-03-04T10:00:00',
            'end_time': '2030-03-04T11:00:00',
            'notes': 'x' * 1001,
        },
        headers=auth_header(users.student),
    )

    assert response.status_code == 400
    assert 'Notes must be 1000 characters or fewer.' in response.json()['detail']


def test_unknown_counselor_is_not_found(client, users) -> None:
    response = client.post(
        '/student/appointments',
        json={'counselor_id': 4040, 'start_time': '2030-03-04T10:00:00', 'end_time': '2030-03-04T11:00:00'},
        headers=auth_header(users.student),
    )

    assert response.status_code == 404


def test_confirm_is_scoped_to_owning_counselor(client, users) -> None:
    appointment_id = book(
        client, users.student, users.counselor, '2030-03-04T10:00:00', '2030-03-04T11:00:00'
    ).json()['id']

    foreign = client.patch(
        f'/counselor/appointments/{appointment_id}/confirm',
        headers=auth_header(users.other_counselor),
    )
    owner = client.patch(
        f'/counselor/appointments/{appointment_id}/confirm',
        headers=auth_header(users.counselor),
    )

    assert foreign.status_code == 403
    assert owner.status_code == 200
    assert owner.json()['status'] == 'confirmed'


def test_terminal_transition_is_a_conflict(client, users) -> None:
    appointment_id = book(
        client, users.student, users.counselor, '2030-03-04T10:00:00', '2030-03-04T11:00:00'
    ).json()['id']
    headers = auth_header(users.counselor)
    client.patch(f'/counselor/appointments/{appointment_id}/confirm', headers=headers)
    client.patch(f'/counselor/appointments/{appointment_id}/complete', headers=headers)

    response = client.patch(f'/counselor/appointments/{appointment_id}/confirm', headers=headers)

    assert response.status_code == 409


def test_cached_reads_reflect_mutations(client, users) -> None:
    appointment_id = book(
        client, users.student, users.counselor, '2030-03-04T10:00:00', '2030-03-04T11:00:00'
    ).json()['id']
    student_headers = auth_header(users.student)

    assert client.get(f'/student/appointments/{appointment_id}', headers=student_headers).json()['status'] == 'pending'
    assert [item['status'] for item in client.get('/student/appointments', headers=student_headers).json()] == ['pending']

    client.patch(f'/counselor/appointments/{appointment_id}/confirm', headers=auth_header(users.counselor))

    assert client.get(f'/student/appointments/{appointment_id}', headers=student_headers).json()['status'] == 'confirmed'
    assert [item['status'] for item in client.get('/student/appointments', headers=student_headers).json()] == ['confirmed']


def test_slots_endpoint_reflects_new_bookings(client, users) -> None:
    headers = auth_header(users.student)
    url = f'/student/counselors/{users.counselor.id}/slots?date=2030-03-04'
    assert client.get(url, headers=headers).json()['booked_slots'] == []

    book(client, users.other_student, users.counselor, '2030-03-04T10:00:00', '2030-03-04T11:00:00')

    assert client.get(url, headers=headers).json()['booked_slots'] == [
        {'start_time': '2030-03-04T10:00:00', 'end_time': '2030-03-04T11:00:00'},
    ]


def test_role_mismatch_is_forbidden(client, users) -> None:
    response = client.get('/admin/appointments', headers=auth_header(users.counselor))

    assert response.status_code == 403


def test_health_check(client) -> None:
    assert client.get('/').json() == {'status': 'CounselHub API Running'}
