from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import AttendanceStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import AttendanceFilter, AttendanceRecord, GeoPoint, MemberVisitStats
from .repository import AttendanceRepository

_COLUMNS = """
    attendance_id, member_pk, check_in, check_out, duration, status,
    check_in_lng, check_in_lat, check_out_lng, check_out_lat, notes
"""


def _point(lng, lat) -> Optional[GeoPoint]:
    if lng is None or lat is None:
        return None
    return GeoPoint(lng=float(lng), lat=float(lat))


def _row_to_record(r: dict) -> AttendanceRecord:
    return AttendanceRecord(
        attendance_id=int(r["attendance_id"]),
        member_pk=int(r["member_pk"]),
        check_in=r["check_in"],
        check_out=r.get("check_out"),
        duration=int(r.get("duration") or 0),
        status=AttendanceStatus(r["status"]),
        check_in_location=_point(r.get("check_in_lng"), r.get("check_in_lat")),
        check_out_location=_point(r.get("check_out_lng"), r.get("check_out_lat")),
        notes=r.get("notes"),
    )


def _where(attendance_filter: AttendanceFilter) -> tuple[str, list[object]]:
    clauses: list[str] = []
    params: list[object] = []

    if attendance_filter.member_pk is not None:
        clauses.append("member_pk=%s")
        params.append(int(attendance_filter.member_pk))
    if attendance_filter.status is not None:
        clauses.append("status=%s")
        params.append(attendance_filter.status.value)
    if attendance_filter.start is not None:
        clauses.append("check_in >= %s")
        params.append(attendance_filter.start)
    if attendance_filter.end is not None:
        clauses.append("check_in <= %s")
        params.append(attendance_filter.end)

    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM attendances WHERE attendance_id=%s", (int(attendance_id),))
            row = fetchone(cur)
            return _row_to_record(row) if row else None

    def find_open_for_member(self, member_pk: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM attendances
                WHERE member_pk=%s AND status=%s
                ORDER BY check_in DESC
                """,
                (int(member_pk), AttendanceStatus.CHECKED_IN.value),
            )
            return [_row_to_record(r) for r in fetchall(cur)]

    def insert_open(
        self,
        *,
        member_pk: int,
        check_in: datetime,
        location: Optional[GeoPoint] = None,
        notes: Optional[str] = None,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendances(member_pk, check_in, duration, status, check_in_lng, check_in_lat, notes)
                VALUES(%s,%s,0,%s,%s,%s,%s)
                """,
                (
                    int(member_pk),
                    check_in,
                    AttendanceStatus.CHECKED_IN.value,
                    location.lng if location else None,
                    location.lat if location else None,
                    notes,
                ),
            )
            return int(cur.lastrowid)

    def save_checkout(self, record: AttendanceRecord) -> bool:
        location = record.check_out_location
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendances
                SET check_out=%s, duration=%s, status=%s, check_out_lng=%s, check_out_lat=%s
                WHERE attendance_id=%s AND status=%s
                """,
                (
                    record.check_out,
                    record.duration,
                    record.status.value,
                    location.lng if location else None,
                    location.lat if location else None,
                    record.attendance_id,
                    AttendanceStatus.CHECKED_IN.value,
                ),
            )
            return cur.rowcount > 0

    def delete_for_member(self, member_pk: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM attendances WHERE member_pk=%s", (int(member_pk),))
            return cur.rowcount

    def search(self, attendance_filter: AttendanceFilter, *, newest_first: bool = True) -> Sequence[AttendanceRecord]:
        where, params = _where(attendance_filter)
        order = "DESC" if newest_first else "ASC"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendances {where} ORDER BY check_in {order}, attendance_id {order}",
                tuple(params),
            )
            return [_row_to_record(r) for r in fetchall(cur)]

    def list_page(self, attendance_filter: AttendanceFilter, *, offset: int, limit: int) -> Sequence[AttendanceRecord]:
        where, params = _where(attendance_filter)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM attendances
                {where}
                ORDER BY check_in DESC, attendance_id DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params + [int(limit), int(offset)]),
            )
            return [_row_to_record(r) for r in fetchall(cur)]

    def count(self, attendance_filter: AttendanceFilter) -> int:
        where, params = _where(attendance_filter)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS total FROM attendances {where}", tuple(params))
            row = fetchone(cur)
            return int(row["total"]) if row else 0

    def average_duration(self, attendance_filter: AttendanceFilter) -> Optional[float]:
        where, params = _where(attendance_filter)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT AVG(duration) AS avg_duration FROM attendances {where}", tuple(params))
            row = fetchone(cur)
            if not row or row["avg_duration"] is None:
                return None
            return float(row["avg_duration"])

    def latest_check_in(self) -> Optional[datetime]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT MAX(check_in) AS latest FROM attendances")
            row = fetchone(cur)
            return row["latest"] if row else None

    def visit_stats(
        self,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Sequence[MemberVisitStats]:
        where, params = _where(AttendanceFilter(start=start, end=end))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT member_pk,
                       COUNT(*) AS total_visits,
                       COALESCE(SUM(duration), 0) AS total_duration,
                       MAX(check_in) AS last_check_in
                FROM attendances
                {where}
                GROUP BY member_pk
                ORDER BY member_pk ASC
                """,
                tuple(params),
            )
            return [
                MemberVisitStats(
                    member_pk=int(r["member_pk"]),
                    total_visits=int(r["total_visits"]),
                    total_duration=int(r["total_duration"]),
                    last_check_in=r["last_check_in"],
                )
                for r in fetchall(cur)
            ]
