from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from mysql.connector import errors as mysql_errors

from ..core.enums import Department, Gender, MembershipType, MemberStatus
from ..core.exceptions import ConflictError, ValidationError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, to_bool
from .model import Member, MemberFilter, MemberProfile
from .repository import MemberRepository

_COLUMNS = """
    member_pk, member_code, full_name, gender, phone, email, date_of_birth, department,
    membership_type, date_joined, qr_code_url, issued_card, status, is_present,
    last_check_in, last_check_out
"""

# Member attribute -> column, for admin edits.
_UPDATABLE_COLUMNS = {
    "full_name": "full_name",
    "gender": "gender",
    "phone": "phone",
    "email": "email",
    "date_of_birth": "date_of_birth",
    "department": "department",
    "membership_type": "membership_type",
    "issued_card": "issued_card",
    "status": "status",
}


def _row_to_member(r: dict) -> Member:
    return Member(
        member_pk=int(r["member_pk"]),
        member_id=r["member_code"],
        full_name=r["full_name"],
        gender=Gender(r["gender"]),
        phone=r["phone"],
        email=r["email"],
        date_of_birth=r["date_of_birth"],
        department=Department(r["department"]),
        membership_type=MembershipType(r["membership_type"]),
        date_joined=r["date_joined"],
        qr_code_url=r["qr_code_url"],
        issued_card=to_bool(r.get("issued_card")),
        status=MemberStatus(r["status"]),
        is_present=to_bool(r.get("is_present")),
        last_check_in=r.get("last_check_in"),
        last_check_out=r.get("last_check_out"),
    )


def _db_value(value: object) -> object:
    return getattr(value, "value", value)


def _where(member_filter: Optional[MemberFilter]) -> tuple[str, list[object]]:
    clauses: list[str] = []
    params: list[object] = []
    if member_filter is None:
        return "", params

    if member_filter.status is not None:
        clauses.append("status=%s")
        params.append(member_filter.status.value)
    if member_filter.department is not None:
        clauses.append("department=%s")
        params.append(member_filter.department.value)
    if member_filter.membership_type is not None:
        clauses.append("membership_type=%s")
        params.append(member_filter.membership_type.value)
    if member_filter.issued_card is not None:
        clauses.append("issued_card=%s")
        params.append(int(member_filter.issued_card))
    if member_filter.query:
        like = f"%{member_filter.query.lower()}%"
        clauses.append("(LOWER(full_name) LIKE %s OR LOWER(email) LIKE %s OR LOWER(member_code) LIKE %s)")
        params.extend([like, like, like])

    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


class MySQLMemberRepository(MemberRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_member_id(self, member_id: str, *, for_update: bool = False) -> Optional[Member]:
        lock = " FOR UPDATE" if for_update else ""
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM members WHERE member_code=%s{lock}", (member_id,))
            row = fetchone(cur)
            return _row_to_member(row) if row else None

    def get_by_pk(self, member_pk: int) -> Optional[Member]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM members WHERE member_pk=%s", (int(member_pk),))
            row = fetchone(cur)
            return _row_to_member(row) if row else None

    def get_many(self, member_pks: Iterable[int]) -> Mapping[int, Member]:
        pks = sorted({int(pk) for pk in member_pks})
        if not pks:
            return {}
        placeholders = ",".join(["%s"] * len(pks))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM members WHERE member_pk IN ({placeholders})", tuple(pks))
            members = [_row_to_member(r) for r in fetchall(cur)]
            return {m.member_pk: m for m in members}

    def find_by_email_or_phone(
        self, *, email: Optional[str] = None, phone: Optional[str] = None, exclude_pk: Optional[int] = None
    ) -> Optional[Member]:
        clauses = []
        params: list = []
        if email is not None:
            clauses.append("email=%s")
            params.append(email)
        if phone is not None:
            clauses.append("phone=%s")
            params.append(phone)
        if not clauses:
            return None
        sql = f"SELECT {_COLUMNS} FROM members WHERE ({' OR '.join(clauses)})"
        if exclude_pk is not None:
            sql += " AND member_pk<>%s"
            params.append(exclude_pk)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql + " LIMIT 1", tuple(params))
            row = fetchone(cur)
            return _row_to_member(row) if row else None

    def get_greatest_member_id(self) -> Optional[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT member_code FROM members ORDER BY member_code DESC LIMIT 1")
            row = fetchone(cur)
            return row["member_code"] if row else None

    def create(
        self,
        *,
        member_id: str,
        profile: MemberProfile,
        qr_code_url: str,
        date_joined: datetime,
    ) -> int:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO members(
                        member_code, full_name, gender, phone, email, date_of_birth,
                        department, membership_type, date_joined, qr_code_url
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        member_id,
                        profile.full_name,
                        profile.gender.value,
                        profile.phone,
                        profile.email,
                        profile.date_of_birth,
                        profile.department.value,
                        profile.membership_type.value,
                        date_joined,
                        qr_code_url,
                    ),
                )
                return int(cur.lastrowid)
        except mysql_errors.IntegrityError:
            raise ConflictError("Member already exists with this email or phone")

    def update_fields(self, member_pk: int, fields: Mapping[str, object]) -> bool:
        unknown = [name for name in fields if name not in _UPDATABLE_COLUMNS]
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}", fields=unknown)
        if not fields:
            return self.get_by_pk(member_pk) is not None

        assignments = ", ".join(f"{_UPDATABLE_COLUMNS[name]}=%s" for name in fields)
        params = [_db_value(v) for v in fields.values()]
        params.append(int(member_pk))
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(f"UPDATE members SET {assignments} WHERE member_pk=%s", tuple(params))
                return cur.rowcount > 0
        except mysql_errors.IntegrityError:
            raise ConflictError("Member already exists with this email or phone")

    def set_presence(
        self,
        member_pk: int,
        *,
        is_present: bool,
        last_check_in: Optional[datetime] = None,
        last_check_out: Optional[datetime] = None,
    ) -> bool:
        assignments = ["is_present=%s"]
        params: list[object] = [int(is_present)]
        if last_check_in is not None:
            assignments.append("last_check_in=%s")
            params.append(last_check_in)
        if last_check_out is not None:
            assignments.append("last_check_out=%s")
            params.append(last_check_out)
        params.append(int(member_pk))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"UPDATE members SET {', '.join(assignments)} WHERE member_pk=%s", tuple(params))
            return cur.rowcount > 0

    def delete(self, member_pk: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM members WHERE member_pk=%s", (int(member_pk),))
            return cur.rowcount > 0

    def list_page(self, member_filter: MemberFilter, *, offset: int, limit: int) -> Sequence[Member]:
        where, params = _where(member_filter)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM members
                {where}
                ORDER BY created_at DESC, member_pk DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params + [int(limit), int(offset)]),
            )
            return [_row_to_member(r) for r in fetchall(cur)]

    def count(self, member_filter: MemberFilter) -> int:
        where, params = _where(member_filter)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS total FROM members {where}", tuple(params))
            row = fetchone(cur)
            return int(row["total"]) if row else 0

    def list_all(self, member_filter: Optional[MemberFilter] = None) -> Sequence[Member]:
        where, params = _where(member_filter)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM members {where} ORDER BY member_code ASC", tuple(params))
            return [_row_to_member(r) for r in fetchall(cur)]

    def list_present(self) -> Sequence[Member]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM members WHERE is_present=1 ORDER BY last_check_in DESC")
            return [_row_to_member(r) for r in fetchall(cur)]

    def mark_cards_issued(self, member_pks: Sequence[int]) -> int:
        if not member_pks:
            return 0
        placeholders = ",".join(["%s"] * len(member_pks))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE members SET issued_card=1 WHERE member_pk IN ({placeholders})",
                tuple(int(pk) for pk in member_pks),
            )
            return cur.rowcount
