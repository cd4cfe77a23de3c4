from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from ..common.datetime_utils import isoformat
from ..members.model import Member

BucketKey = Union[str, int]


@dataclass(frozen=True)
class TrendBucket:
    """Attendance grouped under one key (a day, an hour or a weekday)."""

    key: BucketKey
    count: int
    avg_duration: float

    def to_dict(self) -> dict:
        return {"_id": self.key, "count": self.count, "avgDuration": self.avg_duration}


@dataclass(frozen=True)
class MemberCounts:
    total: int
    active: int
    present: int
    membership_types: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "active": self.active,
            "present": self.present,
            "membershipTypes": [
                {"_id": name, "count": count} for name, count in self.membership_types.items() if count
            ],
        }


@dataclass(frozen=True)
class PeriodCounts:
    today: int
    week: int
    month: int
    avg_duration: int

    def to_dict(self) -> dict:
        return {"today": self.today, "week": self.week, "month": self.month, "avgDuration": self.avg_duration}


@dataclass(frozen=True)
class DashboardStats:
    members: MemberCounts
    attendance: PeriodCounts

    def to_dict(self) -> dict:
        return {"members": self.members.to_dict(), "attendance": self.attendance.to_dict()}


@dataclass(frozen=True)
class TodayStats:
    total_check_ins: int
    currently_present: int
    avg_duration: int
    hourly_distribution: list[TrendBucket]

    def to_dict(self) -> dict:
        return {
            "totalCheckins": self.total_check_ins,
            "currentlyPresent": self.currently_present,
            "avgDuration": self.avg_duration,
            "hourlyDistribution": [{"_id": b.key, "count": b.count} for b in self.hourly_distribution],
        }


@dataclass(frozen=True)
class LiveStats:
    present: int
    today: int
    avg_duration: int

    def to_dict(self) -> dict:
        return {"present": self.present, "today": self.today, "avgDuration": self.avg_duration}


@dataclass(frozen=True)
class HeatmapCell:
    day_of_week: int
    hour: int
    count: int

    def to_dict(self) -> dict:
        return {"_id": {"dayOfWeek": self.day_of_week, "hour": self.hour}, "count": self.count}


@dataclass(frozen=True)
class TopMember:
    member: Member
    check_in_count: int
    last_check_in: datetime

    def to_dict(self) -> dict:
        return {
            "memberId": self.member.member_id,
            "fullName": self.member.full_name,
            "department": self.member.department.value,
            "checkInCount": self.check_in_count,
            "lastCheckIn": isoformat(self.last_check_in),
        }


@dataclass(frozen=True)
class InactiveMember:
    member: Member
    last_check_in: Optional[datetime]
    inactive_days: int

    def to_dict(self) -> dict:
        return {
            "memberId": self.member.member_id,
            "fullName": self.member.full_name,
            "department": self.member.department.value,
            "lastCheckIn": isoformat(self.last_check_in),
            "inactiveDays": self.inactive_days,
        }


@dataclass(frozen=True)
class MemberAttendanceRow:
    member: Member
    total_visits: int
    total_duration: int
    avg_duration: float

    def to_dict(self) -> dict:
        return {
            "member": self.member.to_dict(),
            "totalVisits": self.total_visits,
            "totalDuration": self.total_duration,
            "avgDuration": self.avg_duration,
        }


@dataclass(frozen=True)
class MembersReportRow:
    member: Member
    total_visits: int
    last_visit: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "memberId": self.member.member_id,
            "fullName": self.member.full_name,
            "email": self.member.email,
            "membershipType": self.member.membership_type.value,
            "status": self.member.status.value,
            "totalVisits": self.total_visits,
            "lastVisit": isoformat(self.last_visit),
        }


@dataclass(frozen=True)
class DailyTotal:
    date: str
    total: int

    def to_dict(self) -> dict:
        return {"date": f"{self.date}T00:00:00.000Z", "total": self.total}


@dataclass(frozen=True)
class DepartmentCount:
    department: str
    count: int

    def to_dict(self) -> dict:
        return {"department": self.department, "count": self.count}


@dataclass(frozen=True)
class AnalyticsReport:
    daily_trends: list[DailyTotal]
    department_distribution: list[DepartmentCount]

    def to_dict(self) -> dict:
        return {
            "dailyTrends": [d.to_dict() for d in self.daily_trends],
            "departmentDistribution": [d.to_dict() for d in self.department_distribution],
        }
