from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

from dateutil.relativedelta import relativedelta

from ..attendance.model import AttendanceFilter, AttendanceRecord
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import (
    day_of_week,
    end_of_day,
    end_of_month,
    end_of_week,
    isoformat,
    now_utc,
    start_of_day,
    start_of_month,
    start_of_week,
)
from ..core.constants import DEFAULT_INACTIVE_DAYS, DEFAULT_REPORT_DAYS, DEFAULT_TOP_LIMIT
from ..core.enums import AttendanceStatus, Department, MembershipType, MemberStatus, ReportPeriod
from ..core.exceptions import ValidationError
from ..members.model import MemberFilter
from ..members.repository import MemberRepository
from .model import (
    AnalyticsReport,
    BucketKey,
    DailyTotal,
    DashboardStats,
    DepartmentCount,
    HeatmapCell,
    InactiveMember,
    LiveStats,
    MemberAttendanceRow,
    MemberCounts,
    MembersReportRow,
    PeriodCounts,
    TodayStats,
    TopMember,
    TrendBucket,
)

_PERIODS = {
    ReportPeriod.WEEK: relativedelta(weeks=1),
    ReportPeriod.MONTH: relativedelta(months=1),
    ReportPeriod.YEAR: relativedelta(years=1),
}


def round_half_up(value: Optional[float]) -> int:
    return math.floor(value + 0.5) if value is not None else 0


def bucket_records(records: Iterable[AttendanceRecord], key: Callable[[AttendanceRecord], BucketKey]) -> list[TrendBucket]:
    """Group records by ``key``; count and average duration per bucket, keys ascending.

    Buckets with no records are not produced.
    """
    grouped: dict[BucketKey, list[int]] = defaultdict(list)
    for record in records:
        grouped[key(record)].append(record.duration)

    return [
        TrendBucket(key=k, count=len(durations), avg_duration=sum(durations) / len(durations))
        for k, durations in sorted(grouped.items())
    ]


def parse_period(value: Optional[str]) -> ReportPeriod:
    """Unknown or missing periods fall back to a month."""
    try:
        return ReportPeriod(value)
    except ValueError:
        return ReportPeriod.MONTH


class ReportingEngine:
    """Read-only statistics over the member registry and the attendance ledger."""

    def __init__(
        self,
        members: MemberRepository,
        attendance: AttendanceRepository,
        *,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._members = members
        self._attendance = attendance
        self._clock = clock

    def _default_window(self, start: Optional[datetime], end: Optional[datetime]) -> tuple[datetime, datetime]:
        now = self._clock()
        end = end or now
        start = start or (now - timedelta(days=DEFAULT_REPORT_DAYS))
        if start > end:
            raise ValidationError("startDate must not be after endDate", fields=["startDate", "endDate"])
        return start, end

    # ----- counts -----

    def member_counts(self) -> MemberCounts:
        members = self._members.list_all()
        by_type = {t.value: 0 for t in MembershipType}
        for m in members:
            by_type[m.membership_type.value] += 1
        return MemberCounts(
            total=len(members),
            active=sum(1 for m in members if m.status == MemberStatus.ACTIVE),
            present=sum(1 for m in members if m.is_present),
            membership_types=by_type,
        )

    def attendance_counts(self, now: Optional[datetime] = None) -> PeriodCounts:
        now = now or self._clock()
        avg = self._attendance.average_duration(AttendanceFilter(status=AttendanceStatus.CHECKED_OUT))
        return PeriodCounts(
            today=self._attendance.count(AttendanceFilter(start=start_of_day(now))),
            week=self._attendance.count(AttendanceFilter(start=start_of_week(now))),
            month=self._attendance.count(AttendanceFilter(start=start_of_month(now))),
            avg_duration=round_half_up(avg),
        )

    def dashboard(self, now: Optional[datetime] = None) -> DashboardStats:
        return DashboardStats(members=self.member_counts(), attendance=self.attendance_counts(now))

    def today_stats(self, now: Optional[datetime] = None) -> TodayStats:
        now = now or self._clock()
        records = self._attendance.search(AttendanceFilter(start=start_of_day(now)), newest_first=False)
        closed = [r.duration for r in records if r.status == AttendanceStatus.CHECKED_OUT]
        return TodayStats(
            total_check_ins=len(records),
            currently_present=sum(1 for r in records if r.status == AttendanceStatus.CHECKED_IN),
            avg_duration=round_half_up(sum(closed) / len(closed) if closed else None),
            hourly_distribution=bucket_records(records, lambda r: r.check_in.hour),
        )

    def live_stats(self, now: Optional[datetime] = None) -> LiveStats:
        now = now or self._clock()
        today = start_of_day(now)
        avg = self._attendance.average_duration(AttendanceFilter(start=today, status=AttendanceStatus.CHECKED_OUT))
        return LiveStats(
            present=self._attendance.count(AttendanceFilter(status=AttendanceStatus.CHECKED_IN)),
            today=self._attendance.count(AttendanceFilter(start=today)),
            avg_duration=round_half_up(avg),
        )

    # ----- time-bucketed trends -----

    def weekly_stats(self, now: Optional[datetime] = None) -> list[TrendBucket]:
        now = now or self._clock()
        records = self._attendance.search(AttendanceFilter(start=start_of_week(now), end=end_of_week(now)))
        return bucket_records(records, lambda r: day_of_week(r.check_in))

    def monthly_stats(self, now: Optional[datetime] = None) -> list[TrendBucket]:
        now = now or self._clock()
        records = self._attendance.search(AttendanceFilter(start=start_of_month(now), end=end_of_month(now)))
        return bucket_records(records, lambda r: r.check_in.day)

    def daily_trends(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[TrendBucket]:
        start, end = self._default_window(start, end)
        records = self._attendance.search(AttendanceFilter(start=start, end=end))
        return bucket_records(records, lambda r: r.check_in.strftime("%Y-%m-%d"))

    def heatmap(self) -> list[HeatmapCell]:
        counts: dict[tuple[int, int], int] = defaultdict(int)
        for r in self._attendance.search(AttendanceFilter()):
            counts[(day_of_week(r.check_in), r.check_in.hour)] += 1
        return [HeatmapCell(day_of_week=d, hour=h, count=c) for (d, h), c in sorted(counts.items())]

    def analytics_report(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> AnalyticsReport:
        start, end = self._default_window(start, end)
        window_start, window_end = start_of_day(start), end_of_day(end)

        records = self._attendance.search(AttendanceFilter(start=window_start, end=window_end))
        daily = [
            DailyTotal(date=str(b.key), total=b.count)
            for b in bucket_records(records, lambda r: r.check_in.strftime("%Y-%m-%d"))
        ]

        departments: dict[str, int] = defaultdict(int)
        for m in self._members.list_all(MemberFilter(status=MemberStatus.ACTIVE)):
            if m.department != Department.NONE:
                departments[m.department.value] += 1
        distribution = [
            DepartmentCount(department=name, count=count)
            for name, count in sorted(departments.items(), key=lambda item: (-item[1], item[0]))
        ]
        return AnalyticsReport(daily_trends=daily, department_distribution=distribution)

    # ----- rankings -----

    def top_active_members(
        self,
        period: ReportPeriod = ReportPeriod.MONTH,
        limit: int = DEFAULT_TOP_LIMIT,
    ) -> list[TopMember]:
        """Most frequent visitors in the period ending at the latest check-in of the ledger."""
        anchor = self._attendance.latest_check_in()
        if anchor is None:
            return []

        stats = self._attendance.visit_stats(start=anchor - _PERIODS[period], end=anchor)
        members = self._members.get_many(s.member_pk for s in stats)
        ranked = sorted(
            (
                TopMember(member=members[s.member_pk], check_in_count=s.total_visits, last_check_in=s.last_check_in)
                for s in stats
                if s.member_pk in members
            ),
            key=lambda t: (-t.check_in_count, t.member.member_id),
        )
        return ranked[: max(int(limit), 0)]

    def inactive_members(self, days: int = DEFAULT_INACTIVE_DAYS) -> list[InactiveMember]:
        """Active members whose last check-in is more than ``days`` before the ledger's latest check-in."""
        days = int(days)
        anchor = self._attendance.latest_check_in()
        if anchor is None:
            return []

        cutoff = anchor - timedelta(days=days)
        last_seen = {s.member_pk: s.last_check_in for s in self._attendance.visit_stats()}

        inactive: list[InactiveMember] = []
        for m in self._members.list_all(MemberFilter(status=MemberStatus.ACTIVE)):
            last = last_seen.get(m.member_pk)
            if last is None:
                inactive.append(InactiveMember(member=m, last_check_in=None, inactive_days=days + 1))
            elif last < cutoff:
                # round() is half to even: 22.5 days -> 22.
                elapsed_days = round((anchor - last) / timedelta(days=1))
                inactive.append(InactiveMember(member=m, last_check_in=last, inactive_days=elapsed_days))

        inactive.sort(key=lambda i: (-i.inactive_days, i.member.member_id))
        return inactive

    # ----- cross joins -----

    def attendance_report(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[MemberAttendanceRow]:
        start, end = self._default_window(start, end)
        stats = self._attendance.visit_stats(start=start, end=end)
        members = self._members.get_many(s.member_pk for s in stats)
        rows = [
            MemberAttendanceRow(
                member=members[s.member_pk],
                total_visits=s.total_visits,
                total_duration=s.total_duration,
                avg_duration=s.avg_duration,
            )
            for s in stats
            if s.member_pk in members
        ]
        rows.sort(key=lambda r: r.member.member_id)
        return rows

    def members_report(self) -> list[MembersReportRow]:
        stats = {s.member_pk: s for s in self._attendance.visit_stats()}
        rows: list[MembersReportRow] = []
        for m in self._members.list_all():
            s = stats.get(m.member_pk)
            rows.append(
                MembersReportRow(
                    member=m,
                    total_visits=s.total_visits if s else 0,
                    last_visit=s.last_check_in if s else None,
                )
            )
        return rows

    def attendance_rows(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[dict]:
        """Flat attendance rows (one per record) in the window, for tabular exports."""
        start, end = self._default_window(start, end)
        records: Sequence[AttendanceRecord] = self._attendance.search(AttendanceFilter(start=start, end=end))
        members = self._members.get_many(r.member_pk for r in records)

        rows: list[dict] = []
        for r in records:
            m = members.get(r.member_pk)
            rows.append(
                {
                    "memberId": m.member_id if m else "",
                    "fullName": m.full_name if m else "",
                    "email": m.email if m else "",
                    "checkIn": r.check_in.strftime("%Y-%m-%d %H:%M:%S"),
                    "checkOut": r.check_out.strftime("%Y-%m-%d %H:%M:%S") if r.check_out else "",
                    "duration": r.duration,
                    "status": r.status.value,
                }
            )
        return rows

    def present_members(self) -> list[dict]:
        return [
            {
                "memberId": m.member_id,
                "fullName": m.full_name,
                "email": m.email,
                "membershipType": m.membership_type.value,
                "lastCheckIn": isoformat(m.last_check_in),
            }
            for m in self._members.list_present()
        ]
