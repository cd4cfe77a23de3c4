from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import AttendanceFilter, AttendanceRecord, GeoPoint, MemberVisitStats


class AttendanceRepository(Protocol):
    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def find_open_for_member(self, member_pk: int) -> Sequence[AttendanceRecord]:
        """All ``checked-in`` records of a member; more than one means corrupted data."""

        raise NotImplementedError

    def insert_open(
        self,
        *,
        member_pk: int,
        check_in: datetime,
        location: Optional[GeoPoint] = None,
        notes: Optional[str] = None,
    ) -> int:
        raise NotImplementedError

    def save_checkout(self, record: AttendanceRecord) -> bool:
        """Persist a closed record; only succeeds while the stored row is still open."""

        raise NotImplementedError

    def delete_for_member(self, member_pk: int) -> int:
        raise NotImplementedError

    def search(self, attendance_filter: AttendanceFilter, *, newest_first: bool = True) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def list_page(self, attendance_filter: AttendanceFilter, *, offset: int, limit: int) -> Sequence[AttendanceRecord]:
        """Newest check-in first."""

        raise NotImplementedError

    def count(self, attendance_filter: AttendanceFilter) -> int:
        raise NotImplementedError

    def average_duration(self, attendance_filter: AttendanceFilter) -> Optional[float]:
        """Mean duration in minutes of the matching records, or None when nothing matches."""

        raise NotImplementedError

    def latest_check_in(self) -> Optional[datetime]:
        raise NotImplementedError

    def visit_stats(
        self,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Sequence[MemberVisitStats]:
        """Per-member totals over ``[start, end]`` (both optional, inclusive)."""

        raise NotImplementedError
