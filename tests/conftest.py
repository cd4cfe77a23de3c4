from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence

import pytest

from src.member_attendance.member_attendance.attendance.model import (
    AttendanceFilter,
    AttendanceRecord,
    GeoPoint,
    MemberVisitStats,
)
from src.member_attendance.member_attendance.auth.boundary import TokenAuthority
from src.member_attendance.member_attendance.container import assemble
from src.member_attendance.member_attendance.core.enums import (
    AttendanceStatus,
    Department,
    Gender,
    MembershipType,
    Role,
)
from src.member_attendance.member_attendance.members.model import Member, MemberFilter, MemberProfile

SECRET = "test-secret"


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryMembers:
    def __init__(self):
        self.by_pk: dict[int, Member] = {}
        self._pk = 0

    def add(self, member_id: str, *, full_name: str = "Member", **overrides) -> Member:
        """Seed a member directly, bypassing registration."""
        self._pk += 1
        member = Member(
            member_pk=self._pk,
            member_id=member_id,
            full_name=full_name,
            gender=Gender.OTHER,
            phone=overrides.pop("phone", f"0900{self._pk:06d}"),
            email=overrides.pop("email", f"m{self._pk}@example.com"),
            date_of_birth=date(2000, 1, 1),
            department=Department.NONE,
            membership_type=MembershipType.STUDENT,
            date_joined=datetime(2024, 1, 1),
            qr_code_url=f"/qr-codes/{member_id}.png",
        )
        member = replace(member, **overrides)
        self.by_pk[member.member_pk] = member
        return member

    def get_by_member_id(self, member_id: str, *, for_update: bool = False) -> Optional[Member]:
        return next((m for m in self.by_pk.values() if m.member_id == member_id), None)

    def get_by_pk(self, member_pk: int) -> Optional[Member]:
        return self.by_pk.get(member_pk)

    def get_many(self, member_pks: Iterable[int]) -> Mapping[int, Member]:
        return {pk: self.by_pk[pk] for pk in set(member_pks) if pk in self.by_pk}

    def find_by_email_or_phone(
        self, *, email: Optional[str] = None, phone: Optional[str] = None, exclude_pk: Optional[int] = None
    ) -> Optional[Member]:
        return next(
            (
                m
                for m in self.by_pk.values()
                if m.member_pk != exclude_pk and ((email and m.email == email) or (phone and m.phone == phone))
            ),
            None,
        )

    def get_greatest_member_id(self) -> Optional[str]:
        return max((m.member_id for m in self.by_pk.values()), default=None)

    def create(self, *, member_id: str, profile: MemberProfile, qr_code_url: str, date_joined: datetime) -> int:
        self._pk += 1
        self.by_pk[self._pk] = Member(
            member_pk=self._pk,
            member_id=member_id,
            full_name=profile.full_name,
            gender=profile.gender,
            phone=profile.phone,
            email=profile.email,
            date_of_birth=profile.date_of_birth,
            department=profile.department,
            membership_type=profile.membership_type,
            date_joined=date_joined,
            qr_code_url=qr_code_url,
        )
        return self._pk

    def update_fields(self, member_pk: int, fields: Mapping[str, object]) -> bool:
        if member_pk not in self.by_pk:
            return False
        self.by_pk[member_pk] = replace(self.by_pk[member_pk], **fields)
        return True

    def set_presence(self, member_pk, *, is_present, last_check_in=None, last_check_out=None) -> bool:
        member = replace(self.by_pk[member_pk], is_present=is_present)
        if last_check_in is not None:
            member = replace(member, last_check_in=last_check_in)
        if last_check_out is not None:
            member = replace(member, last_check_out=last_check_out)
        self.by_pk[member_pk] = member
        return True

    def delete(self, member_pk: int) -> bool:
        return self.by_pk.pop(member_pk, None) is not None

    def _matching(self, member_filter: Optional[MemberFilter]) -> list[Member]:
        f = member_filter or MemberFilter()
        out = []
        for m in self.by_pk.values():
            if f.status is not None and m.status != f.status:
                continue
            if f.department is not None and m.department != f.department:
                continue
            if f.membership_type is not None and m.membership_type != f.membership_type:
                continue
            if f.issued_card is not None and m.issued_card != f.issued_card:
                continue
            if f.query and not any(f.query.lower() in v.lower() for v in (m.full_name, m.email, m.member_id)):
                continue
            out.append(m)
        return out

    def list_page(self, member_filter: MemberFilter, *, offset: int, limit: int) -> Sequence[Member]:
        newest_first = sorted(self._matching(member_filter), key=lambda m: m.member_pk, reverse=True)
        return newest_first[offset : offset + limit]

    def count(self, member_filter: MemberFilter) -> int:
        return len(self._matching(member_filter))

    def list_all(self, member_filter: Optional[MemberFilter] = None) -> Sequence[Member]:
        return sorted(self._matching(member_filter), key=lambda m: m.member_id)

    def list_present(self) -> Sequence[Member]:
        return [m for m in self.by_pk.values() if m.is_present]

    def mark_cards_issued(self, member_pks: Sequence[int]) -> int:
        for pk in member_pks:
            self.by_pk[pk] = replace(self.by_pk[pk], issued_card=True)
        return len(member_pks)


class InMemoryAttendance:
    def __init__(self):
        self.by_id: dict[int, AttendanceRecord] = {}
        self._id = 0

    def add(self, member_pk: int, check_in: datetime, check_out: Optional[datetime] = None, duration: int = 0):
        """Seed a record directly, bypassing the presence coordinator."""
        self._id += 1
        record = AttendanceRecord(
            attendance_id=self._id,
            member_pk=member_pk,
            check_in=check_in,
            check_out=check_out,
            duration=duration,
            status=AttendanceStatus.CHECKED_OUT if check_out else AttendanceStatus.CHECKED_IN,
        )
        self.by_id[self._id] = record
        return record

    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        return self.by_id.get(attendance_id)

    def find_open_for_member(self, member_pk: int) -> Sequence[AttendanceRecord]:
        return [
            r
            for r in self.search(AttendanceFilter(member_pk=member_pk, status=AttendanceStatus.CHECKED_IN))
        ]

    def insert_open(self, *, member_pk: int, check_in: datetime, location: Optional[GeoPoint] = None, notes=None) -> int:
        self._id += 1
        self.by_id[self._id] = AttendanceRecord(
            attendance_id=self._id,
            member_pk=member_pk,
            check_in=check_in,
            check_in_location=location,
            notes=notes,
        )
        return self._id

    def save_checkout(self, record: AttendanceRecord) -> bool:
        current = self.by_id.get(record.attendance_id)
        if current is None or current.status != AttendanceStatus.CHECKED_IN:
            return False
        self.by_id[record.attendance_id] = record
        return True

    def delete_for_member(self, member_pk: int) -> int:
        doomed = [i for i, r in self.by_id.items() if r.member_pk == member_pk]
        for i in doomed:
            del self.by_id[i]
        return len(doomed)

    def search(self, attendance_filter: AttendanceFilter, *, newest_first: bool = True) -> Sequence[AttendanceRecord]:
        f = attendance_filter
        out = [
            r
            for r in self.by_id.values()
            if (f.member_pk is None or r.member_pk == f.member_pk)
            and (f.status is None or r.status == f.status)
            and (f.start is None or r.check_in >= f.start)
            and (f.end is None or r.check_in <= f.end)
        ]
        out.sort(key=lambda r: (r.check_in, r.attendance_id), reverse=newest_first)
        return out

    def list_page(self, attendance_filter: AttendanceFilter, *, offset: int, limit: int) -> Sequence[AttendanceRecord]:
        return self.search(attendance_filter)[offset : offset + limit]

    def count(self, attendance_filter: AttendanceFilter) -> int:
        return len(self.search(attendance_filter))

    def average_duration(self, attendance_filter: AttendanceFilter) -> Optional[float]:
        records = self.search(attendance_filter)
        return sum(r.duration for r in records) / len(records) if records else None

    def latest_check_in(self) -> Optional[datetime]:
        return max((r.check_in for r in self.by_id.values()), default=None)

    def visit_stats(self, *, start=None, end=None) -> Sequence[MemberVisitStats]:
        grouped: dict[int, list[AttendanceRecord]] = {}
        for r in self.search(AttendanceFilter(start=start, end=end)):
            grouped.setdefault(r.member_pk, []).append(r)
        return [
            MemberVisitStats(
                member_pk=pk,
                total_visits=len(rs),
                total_duration=sum(r.duration for r in rs),
                last_check_in=max(r.check_in for r in rs),
            )
            for pk, rs in sorted(grouped.items())
        ]


class FakeArtifacts:
    def __init__(self):
        self.generated: list[str] = []

    def generate(self, member_id: str) -> str:
        self.generated.append(member_id)
        return f"/qr-codes/{member_id}.png"


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 9, 0, 0))


@pytest.fixture
def members_repo():
    return InMemoryMembers()


@pytest.fixture
def attendance_repo():
    return InMemoryAttendance()


@pytest.fixture
def artifacts():
    return FakeArtifacts()


@pytest.fixture
def tokens():
    return TokenAuthority(SECRET, max_age_seconds=3600)


@pytest.fixture
def container(members_repo, attendance_repo, artifacts, tokens, clock):
    return assemble(
        members_repo=members_repo,
        attendance_repo=attendance_repo,
        artifacts=artifacts,
        tokens=tokens,
        clock=clock,
    )


@pytest.fixture
def app(container):
    from src.member_attendance.member_attendance.main import create_app

    return create_app("config.testing", container=container)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers(tokens):
    return {"Authorization": f"Bearer {tokens.issue_token('admin-1', Role.ADMIN)}"}


@pytest.fixture
def superadmin_headers(tokens):
    return {"Authorization": f"Bearer {tokens.issue_token('root-1', Role.SUPERADMIN)}"}

