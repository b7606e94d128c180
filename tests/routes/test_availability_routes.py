from datetime import date, datetime, time, timezone
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_backend.auth.jwt_handler import create_access_token
from clinic_backend.models.schedule import Schedule
from clinic_backend.routes.availability_routes import (
    CreateScheduleBlockRequest,
    CreateScheduleRequest,
    create_schedule,
    create_schedule_block,
    list_available_slots,
    list_schedule_blocks,
    list_schedules,
    remove_schedule,
    remove_schedule_block,
)
from clinic_backend.scheduling.exceptions import SourceUnavailable

MONDAY = date(2030, 1, 7)
STAFF = SimpleNamespace(id=None, email='staff@clinic.example', role='assistant')


def test_create_schedule_request_truncates_seconds() -> None:
    request = CreateScheduleRequest(day_of_week=1, start_time=time(9, 0, 45), end_time=time(13, 0))

    assert request.start_time == time(9, 0)
    assert request.slot_duration == 30
    assert request.is_active is True


@pytest.mark.parametrize(
    'payload',
    [
        {'day_of_week': 7, 'start_time': '09:00', 'end_time': '12:00'},
        {'day_of_week': -1, 'start_time': '09:00', 'end_time': '12:00'},
        {'day_of_week': 1, 'start_time': '12:00', 'end_time': '09:00'},
        {'day_of_week': 1, 'start_time': '09:00', 'end_time': '09:00'},
        {'day_of_week': 1, 'start_time': '09:00', 'end_time': '12:00', 'slot_duration': 0},
    ],
)
def test_create_schedule_request_rejects_invalid_rules(payload: dict) -> None:
    with pytest.raises(ValidationError):
        CreateScheduleRequest(**payload)


def test_create_block_request_reads_naive_values_in_clinic_time() -> None:
    request = CreateScheduleBlockRequest(
        start_datetime=datetime(2030, 1, 7, 11, 0),
        end_datetime=datetime(2030, 1, 7, 12, 0),
        reason='  Conference  ',
    )

    assert request.start_datetime == datetime(2030, 1, 7, 11, 0, tzinfo=timezone.utc)
    assert request.reason == 'Conference'


def test_create_block_request_rejects_inverted_range() -> None:
    with pytest.raises(ValidationError):
        CreateScheduleBlockRequest(
            start_datetime=datetime(2030, 1, 7, 12, 0),
            end_datetime=datetime(2030, 1, 7, 11, 0),
        )


def test_list_available_slots_returns_computed_starts(db_session, clinic) -> None:
    doctor = clinic.add_doctor()
    clinic.add_rule(doctor, 1, time(9, 0), time(10, 30))

    response = list_available_slots(doctor_id=doctor.id, slot_date=MONDAY, duration_minutes=30, db=db_session)

    assert response.doctor_id == doctor.id
    assert response.date == MONDAY
    assert response.slots == ['09:00', '09:30', '10:00']


def test_list_available_slots_maps_invalid_duration_to_400(db_session, clinic) -> None:
    doctor = clinic.add_doctor()

    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(doctor_id=doctor.id, slot_date=MONDAY, duration_minutes=0, db=db_session)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Duration must be greater than zero.'


def test_list_available_slots_maps_unknown_doctor_to_400(db_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(doctor_id=404, slot_date=MONDAY, duration_minutes=30, db=db_session)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Doctor not found.'


def test_list_available_slots_maps_read_failure_to_503(db_session, monkeypatch: pytest.MonkeyPatch) -> None:
    def _unavailable(*args, **kwargs):
        raise SourceUnavailable('Availability data could not be read.')

    monkeypatch.setattr('clinic_backend.routes.availability_routes.get_available_slots', _unavailable)

    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(doctor_id=1, slot_date=MONDAY, duration_minutes=30, db=db_session)

    assert exception_info.value.status_code == 503


def test_create_and_list_schedules(db_session, clinic) -> None:
    doctor = clinic.add_doctor()
    clinic.add_rule(doctor, 3, time(14, 0), time(18, 0))

    created = create_schedule(
        doctor_id=doctor.id,
        data=CreateScheduleRequest(day_of_week=1, start_time=time(9, 0), end_time=time(13, 0)),
        db=db_session,
        current_user=STAFF,
    )
    schedules = list_schedules(doctor_id=doctor.id, db=db_session, current_user=STAFF)

    assert created.id is not None
    assert [schedule.day_of_week for schedule in schedules] == [1, 3]


def test_create_schedule_for_unknown_doctor_returns_404(db_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_schedule(
            doctor_id=999,
            data=CreateScheduleRequest(day_of_week=1, start_time=time(9, 0), end_time=time(13, 0)),
            db=db_session,
            current_user=STAFF,
        )

    assert exception_info.value.status_code == 404


def test_remove_schedule_deletes_rule_and_reports_missing(db_session, clinic) -> None:
    doctor = clinic.add_doctor()
    rule = clinic.add_rule(doctor, 1, time(9, 0), time(12, 0))

    remove_schedule(schedule_id=rule.id, db=db_session, current_user=STAFF)

    assert db_session.query(Schedule).count() == 0
    with pytest.raises(HTTPException) as exception_info:
        remove_schedule(schedule_id=rule.id, db=db_session, current_user=STAFF)
    assert exception_info.value.status_code == 404


def test_created_block_removes_slots_until_deleted(db_session, clinic) -> None:
    doctor = clinic.add_doctor()
    staff = clinic.add_user()
    clinic.add_rule(doctor, 1, time(9, 0), time(10, 0))

    block = create_schedule_block(
        doctor_id=doctor.id,
        data=CreateScheduleBlockRequest(
            start_datetime=datetime(2030, 1, 7, 9, 0),
            end_datetime=datetime(2030, 1, 7, 9, 30),
            reason='Personal',
        ),
        db=db_session,
        current_user=staff,
    )

    assert block.created_by == staff.id
    blocked = list_available_slots(doctor_id=doctor.id, slot_date=MONDAY, duration_minutes=30, db=db_session)
    assert blocked.slots == ['09:30']

    remove_schedule_block(block_id=block.id, db=db_session, current_user=staff)
    reopened = list_available_slots(doctor_id=doctor.id, slot_date=MONDAY, duration_minutes=30, db=db_session)
    assert reopened.slots == ['09:00', '09:30']


def test_list_schedule_blocks_returns_only_upcoming(db_session, clinic) -> None:
    doctor = clinic.add_doctor()
    clinic.add_block(
        doctor,
        datetime(2020, 3, 1, 9, 0, tzinfo=timezone.utc),
        datetime(2020, 3, 1, 10, 0, tzinfo=timezone.utc),
    )
    upcoming = clinic.add_block(
        doctor,
        datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc),
        datetime(2030, 1, 7, 10, 0, tzinfo=timezone.utc),
    )

    blocks = list_schedule_blocks(doctor_id=doctor.id, db=db_session, current_user=STAFF)

    assert [block.id for block in blocks] == [upcoming.id]


def test_remove_missing_block_returns_404(db_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        remove_schedule_block(block_id=42, db=db_session, current_user=STAFF)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Blocked time not found.'


def test_slots_endpoint_over_http(client, clinic) -> None:
    doctor = clinic.add_doctor()
    clinic.add_rule(doctor, 1, time(9, 0), time(13, 0))
    clinic.add_appointment(doctor, MONDAY, time(10, 0), time(11, 0))

    response = client.get(
        f'/availability/doctors/{doctor.id}/slots',
        params={'date': '2030-01-07', 'duration_minutes': 60},
    )

    assert response.status_code == 200
    assert response.json()['slots'] == ['09:00', '11:00', '11:30', '12:00']


def test_slots_endpoint_rejects_zero_duration_over_http(client, clinic) -> None:
    doctor = clinic.add_doctor()

    response = client.get(
        f'/availability/doctors/{doctor.id}/slots',
        params={'date': '2030-01-07', 'duration_minutes': 0},
    )

    assert response.status_code == 400


@pytest.mark.parametrize(
    ('params', 'detail'),
    [
        ({'date': '2030-13-01'}, 'Date must be in YYYY-MM-DD format.'),
        ({'date': 'next monday'}, 'Date must be in YYYY-MM-DD format.'),
        ({}, 'A calendar date is required.'),
        ({'date': '2030-01-07', 'duration_minutes': 'half-hour'}, 'Duration must be a whole number of minutes.'),
        ({'date': '2030-01-07', 'duration_minutes': '30.5'}, 'Duration must be a whole number of minutes.'),
        ({'date': '2030-01-07', 'duration_minutes': '-30'}, 'Duration must be greater than zero.'),
    ],
)
def test_slots_endpoint_maps_malformed_query_to_400(client, clinic, params: dict, detail: str) -> None:
    doctor = clinic.add_doctor()

    response = client.get(f'/availability/doctors/{doctor.id}/slots', params=params)

    assert response.status_code == 400
    assert response.json()['detail'] == detail


def test_schedule_admin_requires_token_over_http(client, clinic) -> None:
    doctor = clinic.add_doctor()

    response = client.get(f'/availability/doctors/{doctor.id}/schedules')

    assert response.status_code == 401


def test_schedule_admin_accepts_staff_token_over_http(client, clinic) -> None:
    doctor = clinic.add_doctor()
    clinic.add_user(email='doctor@clinic.example', role='doctor')
    token = create_access_token('doctor@clinic.example')

    response = client.post(
        f'/availability/doctors/{doctor.id}/schedules',
        json={'day_of_week': 1, 'start_time': '09:00', 'end_time': '12:00', 'slot_duration': 30},
        headers={'Authorization': f'Bearer {token}'},
    )

    assert response.status_code == 201
    assert response.json()['start_time'] == '09:00:00'
