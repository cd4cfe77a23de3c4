from __future__ import annotations

import logging
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime
from typing import Any, Callable, ContextManager, Iterator, Optional

from ..attendance.ledger import AttendanceLedger
from ..attendance.model import AttendanceRecord, GeoPoint
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import now_utc
from ..core.enums import TransitionSource
from ..core.exceptions import ConflictError, InternalConsistencyError, NotFoundError
from ..members.model import Member
from ..members.repository import MemberRepository

logger = logging.getLogger(__name__)

TransactionFactory = Callable[[], ContextManager[Any]]


class MemberLocks:
    """One mutex per member ID so that transitions of the same member never interleave."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # member_id -> [lock, number of threads holding or waiting for it]
        self._locks: dict[str, list] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, member_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(member_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[member_id]


class PresenceCoordinator:
    """Check-in/check-out state machine (AWAY -> PRESENT -> AWAY).

    Each transition writes the ledger and the member's presence flag inside one
    store transaction, while holding the member's lock.
    """

    def __init__(
        self,
        members: MemberRepository,
        ledger: AttendanceLedger,
        attendance: AttendanceRepository,
        *,
        transaction: Optional[TransactionFactory] = None,
        clock: Callable[[], datetime] = now_utc,
        locks: Optional[MemberLocks] = None,
    ):
        self._members = members
        self._ledger = ledger
        self._attendance = attendance
        self._transaction = transaction or nullcontext
        self._clock = clock
        self._locks = locks or MemberLocks()

    def _load_member(self, member_id: str) -> Member:
        member = self._members.get_by_member_id(member_id, for_update=True)
        if not member:
            raise NotFoundError("Member not found")
        return member

    def check_in(
        self,
        member_id: str,
        *,
        now: Optional[datetime] = None,
        location: Optional[GeoPoint] = None,
        notes: Optional[str] = None,
        source: TransitionSource = TransitionSource.SELF,
    ) -> AttendanceRecord:
        at = now or self._clock()

        with self._locks.hold(member_id), self._transaction():
            member = self._load_member(member_id)
            if member.is_present:
                raise ConflictError("Member is already checked in", status_code=400)

            record = self._ledger.open_record(member.member_pk, at, location, notes)
            self._members.set_presence(member.member_pk, is_present=True, last_check_in=record.check_in)

        logger.info(
            "Check-in member=%s attendance=%s source=%s", member_id, record.attendance_id, source.value
        )
        return record

    def check_out(
        self,
        member_id: str,
        *,
        now: Optional[datetime] = None,
        location: Optional[GeoPoint] = None,
        source: TransitionSource = TransitionSource.SELF,
    ) -> AttendanceRecord:
        at = now or self._clock()

        with self._locks.hold(member_id), self._transaction():
            member = self._load_member(member_id)
            if not member.is_present:
                raise ConflictError("Member is not checked in", status_code=400)

            try:
                open_record = self._ledger.find_open_record_for(member.member_pk)
            except NotFoundError:
                logger.error(
                    "Invariant breach: member %s is marked present but has no open attendance record",
                    member_id,
                )
                raise InternalConsistencyError("No active attendance record found", status_code=404)

            record = self._ledger.close_record(open_record.attendance_id, at, location)
            self._members.set_presence(member.member_pk, is_present=False, last_check_out=record.check_out)

        logger.info(
            "Check-out member=%s attendance=%s duration=%s source=%s",
            member_id,
            record.attendance_id,
            record.duration,
            source.value,
        )
        return record

    def reconcile_presence(self) -> list[str]:
        """Re-derive every member's presence flag from the ledger.

        Returns the member IDs whose flag had to be corrected.
        """
        corrected: list[str] = []
        for member in self._members.list_all():
            with self._locks.hold(member.member_id), self._transaction():
                current = self._members.get_by_member_id(member.member_id, for_update=True)
                if not current:
                    continue
                expected = bool(self._attendance.find_open_for_member(current.member_pk))
                if current.is_present == expected:
                    continue
                self._members.set_presence(current.member_pk, is_present=expected)

            logger.warning(
                "Reconciled presence of member %s: isPresent %s -> %s",
                member.member_id,
                current.is_present,
                expected,
            )
            corrected.append(member.member_id)
        return corrected
