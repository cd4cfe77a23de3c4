from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from src.member_attendance.member_attendance.core.enums import (
    Department,
    MembershipType,
    MemberStatus,
    ReportPeriod,
)
from src.member_attendance.member_attendance.core.exceptions import ValidationError
from src.member_attendance.member_attendance.reports.service import parse_period, round_half_up


@pytest.fixture
def seeded(members_repo, attendance_repo):
    """Clock is Monday 2024-01-15 09:00; the week started Sunday 2024-01-14."""
    a = members_repo.add("24010001", department=Department.ERA_OPENLABS, is_present=True)
    b = members_repo.add("24010002", department=Department.ERA_OPENLABS, membership_type=MembershipType.STAFF)
    c = members_repo.add("24010003", department=Department.ERA_EDUCATION, status=MemberStatus.INACTIVE)

    attendance_repo.add(a.member_pk, datetime(2024, 1, 15, 8, 0))
    attendance_repo.add(b.member_pk, datetime(2024, 1, 14, 10, 0), datetime(2024, 1, 14, 11, 0), 60)
    attendance_repo.add(a.member_pk, datetime(2024, 1, 3, 18, 0), datetime(2024, 1, 3, 18, 30), 30)
    attendance_repo.add(b.member_pk, datetime(2023, 12, 20, 7, 0), datetime(2023, 12, 20, 8, 30), 90)
    return a, b, c


def test_round_half_up():
    assert round_half_up(None) == 0
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


def test_unknown_period_falls_back_to_month():
    assert parse_period("decade") == ReportPeriod.MONTH
    assert parse_period(None) == ReportPeriod.MONTH
    assert parse_period("week") == ReportPeriod.WEEK


def test_dashboard_counts(container, seeded):
    stats = container.reporting.dashboard().to_dict()

    assert stats["members"] == {
        "total": 3,
        "active": 2,
        "present": 1,
        "membershipTypes": [{"_id": "Student", "count": 2}, {"_id": "Staff", "count": 1}],
    }
    assert stats["attendance"] == {"today": 1, "week": 2, "month": 3, "avgDuration": 60}


def test_today_stats(container, seeded):
    stats = container.reporting.today_stats().to_dict()

    assert stats == {
        "totalCheckins": 1,
        "currentlyPresent": 1,
        "avgDuration": 0,
        "hourlyDistribution": [{"_id": 8, "count": 1}],
    }


def test_weekly_stats_bucket_by_day_of_week_starting_sunday(container, seeded):
    buckets = [b.to_dict() for b in container.reporting.weekly_stats()]

    assert buckets == [
        {"_id": 1, "count": 1, "avgDuration": 60.0},
        {"_id": 2, "count": 1, "avgDuration": 0.0},
    ]


def test_monthly_stats_bucket_by_day_of_month(container, seeded):
    assert [(b.key, b.count) for b in container.reporting.monthly_stats()] == [(3, 1), (14, 1), (15, 1)]


def test_daily_trends_are_sparse_and_ascending(container, members_repo, attendance_repo):
    member = members_repo.add("24010001")
    attendance_repo.add(member.member_pk, datetime(2024, 1, 10, 9), datetime(2024, 1, 10, 10), 60)
    attendance_repo.add(member.member_pk, datetime(2024, 1, 10, 14), datetime(2024, 1, 10, 14, 30), 30)
    attendance_repo.add(member.member_pk, datetime(2024, 1, 12, 9), datetime(2024, 1, 12, 9, 45), 45)

    buckets = container.reporting.daily_trends(datetime(2024, 1, 10), datetime(2024, 1, 12, 23, 59))

    assert [(b.key, b.count) for b in buckets] == [("2024-01-10", 2), ("2024-01-12", 1)]
    assert buckets[0].avg_duration == 45


def test_daily_trends_reject_inverted_window(container):
    with pytest.raises(ValidationError):
        container.reporting.daily_trends(datetime(2024, 1, 12), datetime(2024, 1, 10))


def test_heatmap_groups_by_weekday_and_hour(container, seeded):
    cells = [c.to_dict() for c in container.reporting.heatmap()]

    assert {"_id": {"dayOfWeek": 2, "hour": 8}, "count": 1} in cells
    assert {"_id": {"dayOfWeek": 1, "hour": 10}, "count": 1} in cells
    assert sum(c["count"] for c in cells) == 4


def test_analytics_report_counts_whole_days_and_active_departments(container, seeded, members_repo):
    members_repo.add("24010004", department=Department.ERA_SOFTWARES)
    members_repo.add("24010005")

    report = container.reporting.analytics_report(datetime(2024, 1, 14, 12), datetime(2024, 1, 15, 0, 1)).to_dict()

    assert report["dailyTrends"] == [
        {"date": "2024-01-14T00:00:00.000Z", "total": 1},
        {"date": "2024-01-15T00:00:00.000Z", "total": 1},
    ]
    assert report["departmentDistribution"] == [
        {"department": "ERA OPENLABS", "count": 2},
        {"department": "ERA Softwares", "count": 1},
    ]


def test_top_active_members_anchor_on_latest_check_in(container, members_repo, attendance_repo):
    a = members_repo.add("24010001", full_name="A")
    b = members_repo.add("24010002", full_name="B")
    c = members_repo.add("24010003", full_name="C")
    anchor = datetime(2023, 6, 30, 18, 0)

    for days in (0, 3, 10):
        attendance_repo.add(b.member_pk, anchor - timedelta(days=days))
        attendance_repo.add(a.member_pk, anchor - timedelta(days=days, hours=1))
    attendance_repo.add(c.member_pk, anchor - timedelta(days=1))
    for days in (40, 41, 42, 43, 44):
        attendance_repo.add(c.member_pk, anchor - timedelta(days=days))
    attendance_repo.add(999, anchor - timedelta(days=2))

    top = container.reporting.top_active_members(ReportPeriod.MONTH, 2)

    assert [(t.member.member_id, t.check_in_count) for t in top] == [("24010001", 3), ("24010002", 3)]
    assert top[1].last_check_in == anchor
    assert top[0].to_dict()["lastCheckIn"] == "2023-06-30T17:00:00.000Z"

    yearly = container.reporting.top_active_members(ReportPeriod.YEAR, 10)
    assert [t.member.member_id for t in yearly] == ["24010003", "24010001", "24010002"]


def test_top_active_members_on_empty_ledger(container, members_repo):
    members_repo.add("24010001")

    assert container.reporting.top_active_members() == []


def test_inactive_members(container, members_repo, attendance_repo):
    anchor = datetime(2024, 3, 1, 12, 0)
    recent = members_repo.add("24010001")
    stale = members_repo.add("24010002")
    members_repo.add("24010003")
    members_repo.add("24010004", status=MemberStatus.SUSPENDED)
    attendance_repo.add(recent.member_pk, anchor)
    attendance_repo.add(stale.member_pk, anchor - timedelta(days=25))

    inactive = container.reporting.inactive_members(21)

    assert [(i.member.member_id, i.inactive_days) for i in inactive] == [("24010002", 25), ("24010003", 22)]
    assert inactive[1].to_dict()["lastCheckIn"] is None


def test_inactive_cutoff_is_strict(container, members_repo, attendance_repo):
    anchor = datetime(2024, 3, 1, 12, 0)
    recent = members_repo.add("24010001")
    edge = members_repo.add("24010002")
    attendance_repo.add(recent.member_pk, anchor)
    attendance_repo.add(edge.member_pk, anchor - timedelta(days=21))

    assert container.reporting.inactive_members(21) == []


def test_inactive_members_on_empty_ledger(container, members_repo):
    members_repo.add("24010001")

    assert container.reporting.inactive_members() == []


def test_attendance_report_is_an_inner_join(container, seeded, attendance_repo):
    attendance_repo.add(999, datetime(2024, 1, 10, 9))

    rows = container.reporting.attendance_report(datetime(2024, 1, 1), datetime(2024, 1, 31))

    assert [(r.member.member_id, r.total_visits, r.total_duration) for r in rows] == [
        ("24010001", 2, 30),
        ("24010002", 1, 60),
    ]
    assert rows[0].avg_duration == 15


def test_members_report_includes_members_without_visits(container, seeded):
    rows = [r.to_dict() for r in container.reporting.members_report()]

    assert [(r["memberId"], r["totalVisits"]) for r in rows] == [("24010001", 2), ("24010002", 2), ("24010003", 0)]
    assert rows[0]["lastVisit"] == "2024-01-15T08:00:00.000Z"
    assert rows[2]["lastVisit"] is None


def test_live_stats_and_present_members(container, seeded):
    assert container.reporting.live_stats().to_dict() == {"present": 1, "today": 1, "avgDuration": 0}
    assert [m["memberId"] for m in container.reporting.present_members()] == ["24010001"]


def test_attendance_rows_flatten_member_identity(container, seeded):
    rows = container.reporting.attendance_rows(datetime(2024, 1, 14), datetime(2024, 1, 15, 23))

    assert rows[0] == {
        "memberId": "24010001",
        "fullName": "Member",
        "email": "m1@example.com",
        "checkIn": "2024-01-15 08:00:00",
        "checkOut": "",
        "duration": 0,
        "status": "checked-in",
    }
    assert rows[1]["checkOut"] == "2024-01-14 11:00:00"


def test_inactive_days_round_half_to_even(container, members_repo, attendance_repo):
    anchor = datetime(2024, 3, 1, 12, 0)
    recent = members_repo.add("24010001")
    even = members_repo.add("24010002")
    odd = members_repo.add("24010003")
    attendance_repo.add(recent.member_pk, anchor)
    attendance_repo.add(even.member_pk, anchor - timedelta(days=22, hours=12))
    attendance_repo.add(odd.member_pk, anchor - timedelta(days=23, hours=12))

    inactive = container.reporting.inactive_members(21)

    assert [(i.member.member_id, i.inactive_days) for i in inactive] == [("24010003", 24), ("24010002", 22)]
