from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import start_of_day
from ..common.pagination import Page, PageRequest
from ..core.enums import AttendanceStatus
from ..core.exceptions import InternalConsistencyError, InvalidStateError, NotFoundError
from ..members.model import Member
from ..members.repository import MemberRepository
from .model import AttendanceFilter, AttendanceRecord, GeoPoint
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttendanceEntry:
    """An attendance record joined with the identity of its member."""

    record: AttendanceRecord
    member: Optional[Member]

    def to_dict(self) -> dict:
        return self.record.to_dict(self.member.identity() if self.member else None)


class AttendanceLedger:
    """Owns attendance records: opening, closing and read queries.

    Presence rules (who may check in or out) live in the presence coordinator;
    the ledger only guards each record's own lifecycle.
    """

    def __init__(self, attendance: AttendanceRepository, members: MemberRepository):
        self._attendance = attendance
        self._members = members

    def open_record(
        self,
        member_pk: int,
        at: datetime,
        location: Optional[GeoPoint] = None,
        notes: Optional[str] = None,
    ) -> AttendanceRecord:
        attendance_id = self._attendance.insert_open(member_pk=member_pk, check_in=at, location=location, notes=notes)
        return AttendanceRecord(
            attendance_id=attendance_id,
            member_pk=member_pk,
            check_in=at,
            status=AttendanceStatus.CHECKED_IN,
            check_in_location=location,
            notes=notes,
        )

    def close_record(self, attendance_id: int, at: datetime, location: Optional[GeoPoint] = None) -> AttendanceRecord:
        record = self._attendance.get_by_id(attendance_id)
        if not record:
            raise NotFoundError("Attendance record not found")

        closed = record.closed(at, location)
        if not self._attendance.save_checkout(closed):
            raise InvalidStateError(f"Attendance record {attendance_id} is already checked out")
        return closed

    def find_open_record_for(self, member_pk: int) -> AttendanceRecord:
        open_records = self._attendance.find_open_for_member(member_pk)
        if not open_records:
            raise NotFoundError("No active attendance record found")
        if len(open_records) > 1:
            logger.error(
                "Invariant breach: member_pk=%s has %d open attendance records (%s)",
                member_pk,
                len(open_records),
                ", ".join(str(r.attendance_id) for r in open_records),
            )
            raise InternalConsistencyError("Member has more than one active attendance record")
        return open_records[0]

    def get_entry(self, attendance_id: int) -> AttendanceEntry:
        record = self._attendance.get_by_id(attendance_id)
        if not record:
            raise NotFoundError("Attendance record not found")
        return AttendanceEntry(record=record, member=self._members.get_by_pk(record.member_pk))

    def list_entries(
        self,
        page_request: PageRequest,
        *,
        status: Optional[AttendanceStatus] = None,
        member_id: Optional[str] = None,
    ) -> Page[AttendanceEntry]:
        member_pk = None
        if member_id:
            member = self._members.get_by_member_id(member_id)
            if not member:
                return Page(items=[], page=page_request.page, limit=page_request.limit, total=0)
            member_pk = member.member_pk

        attendance_filter = AttendanceFilter(member_pk=member_pk, status=status)
        total = self._attendance.count(attendance_filter)
        records = self._attendance.list_page(attendance_filter, offset=page_request.offset, limit=page_request.limit)
        return Page(items=self._join(records), page=page_request.page, limit=page_request.limit, total=total)

    def member_history(self, member_id: str, page_request: PageRequest) -> Page[AttendanceEntry]:
        member = self._members.get_by_member_id(member_id)
        if not member:
            raise NotFoundError("Member not found")

        attendance_filter = AttendanceFilter(member_pk=member.member_pk)
        total = self._attendance.count(attendance_filter)
        records = self._attendance.list_page(attendance_filter, offset=page_request.offset, limit=page_request.limit)
        items = [AttendanceEntry(record=r, member=member) for r in records]
        return Page(items=items, page=page_request.page, limit=page_request.limit, total=total)

    def today_entries(self, now: datetime) -> Sequence[AttendanceEntry]:
        return self._join(self._attendance.search(AttendanceFilter(start=start_of_day(now))))

    def search_entries(
        self,
        *,
        member_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[AttendanceStatus] = None,
    ) -> Sequence[AttendanceEntry]:
        member_pk = None
        if member_id:
            member = self._members.get_by_member_id(member_id)
            if not member:
                return []
            member_pk = member.member_pk

        records = self._attendance.search(
            AttendanceFilter(member_pk=member_pk, status=status, start=start, end=end)
        )
        return self._join(records)

    def _join(self, records: Sequence[AttendanceRecord]) -> list[AttendanceEntry]:
        members = self._members.get_many(r.member_pk for r in records)
        return [AttendanceEntry(record=r, member=members.get(r.member_pk)) for r in records]
