from __future__ import annotations

from datetime import datetime

import pytest

from src.member_attendance.member_attendance.attendance.model import GeoPoint
from src.member_attendance.member_attendance.common.pagination import PageRequest
from src.member_attendance.member_attendance.core.enums import AttendanceStatus
from src.member_attendance.member_attendance.core.exceptions import (
    InternalConsistencyError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


def test_close_record_derives_duration_in_minutes(container, members_repo):
    member = members_repo.add("24010001")
    opened = container.ledger.open_record(member.member_pk, datetime(2024, 1, 15, 9, 0))

    closed = container.ledger.close_record(opened.attendance_id, datetime(2024, 1, 15, 10, 30))

    assert closed.duration == 90
    assert closed.formatted_duration == "1h 30m"
    assert closed.status == AttendanceStatus.CHECKED_OUT
    assert closed.check_out == datetime(2024, 1, 15, 10, 30)


def test_duration_rounds_half_minutes_up(container, members_repo):
    member = members_repo.add("24010001")
    opened = container.ledger.open_record(member.member_pk, datetime(2024, 1, 15, 9, 0, 0))

    closed = container.ledger.close_record(opened.attendance_id, datetime(2024, 1, 15, 9, 2, 30))

    assert closed.duration == 3


def test_close_record_twice_is_invalid_state(container, members_repo):
    member = members_repo.add("24010001")
    opened = container.ledger.open_record(member.member_pk, datetime(2024, 1, 15, 9, 0))
    container.ledger.close_record(opened.attendance_id, datetime(2024, 1, 15, 9, 45))

    with pytest.raises(InvalidStateError):
        container.ledger.close_record(opened.attendance_id, datetime(2024, 1, 15, 10, 0))


def test_close_record_before_check_in_is_rejected(container, members_repo):
    member = members_repo.add("24010001")
    opened = container.ledger.open_record(member.member_pk, datetime(2024, 1, 15, 9, 0))

    with pytest.raises(ValidationError):
        container.ledger.close_record(opened.attendance_id, datetime(2024, 1, 15, 8, 59))


def test_close_unknown_record_is_not_found(container):
    with pytest.raises(NotFoundError):
        container.ledger.close_record(404, datetime(2024, 1, 15, 9, 0))


def test_open_record_keeps_location_and_notes(container, members_repo):
    member = members_repo.add("24010001")
    point = GeoPoint.from_payload({"type": "Point", "coordinates": [105.85, 21.02]})

    record = container.ledger.open_record(member.member_pk, datetime(2024, 1, 15, 9), point, "front desk")
    data = container.ledger.get_entry(record.attendance_id).to_dict()

    assert data["checkInLocation"] == {"type": "Point", "coordinates": [105.85, 21.02]}
    assert data["notes"] == "front desk"
    assert data["member"] == {"memberId": "24010001", "fullName": "Member", "email": "m1@example.com"}


def test_geo_point_rejects_out_of_range_coordinates():
    with pytest.raises(ValidationError) as exc:
        GeoPoint.from_payload({"type": "Point", "coordinates": [200, 0]})

    assert exc.value.fields == ["location"]


def test_find_open_record_without_any_is_not_found(container, members_repo):
    member = members_repo.add("24010001")

    with pytest.raises(NotFoundError):
        container.ledger.find_open_record_for(member.member_pk)


def test_find_open_record_with_two_open_is_internal_consistency(container, members_repo, attendance_repo):
    member = members_repo.add("24010001")
    attendance_repo.add(member.member_pk, datetime(2024, 1, 14, 9))
    attendance_repo.add(member.member_pk, datetime(2024, 1, 15, 9))

    with pytest.raises(InternalConsistencyError):
        container.ledger.find_open_record_for(member.member_pk)


def test_list_entries_filters_by_status_and_member(container, members_repo, attendance_repo):
    a = members_repo.add("24010001")
    b = members_repo.add("24010002")
    attendance_repo.add(a.member_pk, datetime(2024, 1, 14, 9), datetime(2024, 1, 14, 10), 60)
    attendance_repo.add(a.member_pk, datetime(2024, 1, 15, 9))
    attendance_repo.add(b.member_pk, datetime(2024, 1, 15, 8))

    open_page = container.ledger.list_entries(PageRequest(), status=AttendanceStatus.CHECKED_IN)
    a_page = container.ledger.list_entries(PageRequest(), member_id="24010001")

    assert [e.member.member_id for e in open_page.items] == ["24010001", "24010002"]
    assert open_page.total == 2
    assert [e.record.check_in for e in a_page.items] == [datetime(2024, 1, 15, 9), datetime(2024, 1, 14, 9)]


def test_list_entries_for_unknown_member_is_empty(container, members_repo, attendance_repo):
    member = members_repo.add("24010001")
    attendance_repo.add(member.member_pk, datetime(2024, 1, 15, 9))

    page = container.ledger.list_entries(PageRequest(), member_id="99999999")

    assert page.items == []
    assert page.total == 0


def test_member_history_of_unknown_member_is_not_found(container):
    with pytest.raises(NotFoundError):
        container.ledger.member_history("99999999", PageRequest())


def test_member_history_paginates(container, members_repo, attendance_repo):
    member = members_repo.add("24010001")
    for day in range(1, 6):
        attendance_repo.add(member.member_pk, datetime(2024, 1, day, 9), datetime(2024, 1, day, 10), 60)

    page = container.ledger.member_history("24010001", PageRequest(page=2, limit=2))

    assert [e.record.check_in.day for e in page.items] == [3, 2]
    assert page.metadata() == {
        "page": 2,
        "limit": 2,
        "total": 5,
        "totalPages": 3,
        "hasNextPage": True,
        "hasPrevPage": True,
        "nextPage": 3,
        "prevPage": 1,
    }


def test_today_entries_start_at_midnight(container, members_repo, attendance_repo):
    member = members_repo.add("24010001")
    attendance_repo.add(member.member_pk, datetime(2024, 1, 14, 23, 59), datetime(2024, 1, 15, 0, 30), 31)
    attendance_repo.add(member.member_pk, datetime(2024, 1, 15, 0, 45))

    entries = container.ledger.today_entries(datetime(2024, 1, 15, 12, 0))

    assert [e.record.check_in for e in entries] == [datetime(2024, 1, 15, 0, 45)]
