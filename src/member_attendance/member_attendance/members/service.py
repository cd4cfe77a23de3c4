from __future__ import annotations

import logging
import threading
from contextlib import nullcontext
from datetime import date, datetime
from typing import Any, Callable, ContextManager, Mapping, Optional, Sequence

from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import now_utc, parse_iso_datetime
from ..common.pagination import Page, PageRequest
from ..common.validators import require_email, require_enum, require_non_empty
from ..core.constants import MEMBER_ID_PREFIX_FORMAT, MEMBER_SEQUENCE_WIDTH
from ..core.enums import Department, Gender, MembershipType, MemberStatus
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..qrcodes.generator import ArtifactGenerator
from .model import Member, MemberFilter, MemberProfile
from .repository import MemberRepository

logger = logging.getLogger(__name__)

TransactionFactory = Callable[[], ContextManager[Any]]

# Wire name -> (Member attribute, parser) for admin edits.
_EDITABLE_FIELDS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "fullName": ("full_name", lambda v: require_non_empty(v, "fullName")),
    "gender": ("gender", lambda v: require_enum(v, Gender, "gender")),
    "phone": ("phone", lambda v: require_non_empty(v, "phone")),
    "email": ("email", lambda v: require_email(v, "email")),
    "dateOfBirth": ("date_of_birth", lambda v: parse_birth_date(v)),
    "department": ("department", lambda v: require_enum(v, Department, "department")),
    "membershipType": ("membership_type", lambda v: require_enum(v, MembershipType, "membershipType")),
    "issuedCard": ("issued_card", lambda v: _require_bool(v, "issuedCard")),
    "status": ("status", lambda v: require_enum(v, MemberStatus, "status")),
}


def _require_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a boolean", fields=[field_name])
    return value


def parse_birth_date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    born = parse_iso_datetime(require_non_empty(value, "dateOfBirth"), field_name="dateOfBirth").date()
    if born > now_utc().date():
        raise ValidationError("dateOfBirth cannot be in the future", fields=["dateOfBirth"])
    return born


def parse_profile(payload: Mapping[str, Any]) -> MemberProfile:
    """Validate a registration payload, reporting every offending field at once."""

    values: dict[str, Any] = {}
    errors: list[ValidationError] = []

    def collect(key: str, parser: Callable[[Any], Any], *, default: Any = None) -> None:
        raw = payload.get(key)
        if raw is None and default is not None:
            values[key] = default
            return
        try:
            values[key] = parser(raw)
        except ValidationError as e:
            errors.append(e)

    collect("fullName", lambda v: require_non_empty(v, "fullName"))
    collect("gender", lambda v: require_enum(v, Gender, "gender"))
    collect("phone", lambda v: require_non_empty(v, "phone"))
    collect("email", lambda v: require_email(v, "email"))
    collect("dateOfBirth", parse_birth_date)
    collect("department", lambda v: require_enum(v, Department, "department"), default=Department.NONE)
    collect(
        "membershipType",
        lambda v: require_enum(v, MembershipType, "membershipType"),
        default=MembershipType.STUDENT,
    )

    if errors:
        fields = [f for e in errors for f in e.fields]
        message = "; ".join(e.message for e in errors)
        raise ValidationError(message, fields=fields)

    return MemberProfile(
        full_name=values["fullName"],
        gender=values["gender"],
        phone=values["phone"],
        email=values["email"],
        date_of_birth=values["dateOfBirth"],
        department=values["department"],
        membership_type=values["membershipType"],
    )


def next_member_id(greatest_member_id: Optional[str], now: datetime) -> str:
    """``YYMM`` of ``now`` followed by the global sequence.

    The sequence continues from the greatest existing ID regardless of its
    month prefix; it never resets.
    """
    prefix = now.strftime(MEMBER_ID_PREFIX_FORMAT)
    sequence = int(greatest_member_id[-MEMBER_SEQUENCE_WIDTH:]) + 1 if greatest_member_id else 1
    return f"{prefix}{sequence:0{MEMBER_SEQUENCE_WIDTH}d}"


class MemberRegistry:
    """Use case: manage member identity and profile (registration, admin edits, deletion)."""

    def __init__(
        self,
        members: MemberRepository,
        attendance: AttendanceRepository,
        artifacts: ArtifactGenerator,
        *,
        transaction: Optional[TransactionFactory] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._members = members
        self._attendance = attendance
        self._artifacts = artifacts
        self._transaction = transaction or nullcontext
        self._clock = clock
        # Member IDs derive from the greatest stored ID, so registrations run one at a time.
        self._registration_lock = threading.Lock()

    def register(self, payload: Mapping[str, Any]) -> Member:
        profile = parse_profile(payload)

        with self._registration_lock:
            if self._members.find_by_email_or_phone(email=profile.email, phone=profile.phone):
                raise ConflictError("Member already exists with this email or phone", status_code=400)

            now = self._clock()
            member_id = next_member_id(self._members.get_greatest_member_id(), now)
            qr_code_url = self._artifacts.generate(member_id)
            member_pk = self._members.create(
                member_id=member_id,
                profile=profile,
                qr_code_url=qr_code_url,
                date_joined=now,
            )

        logger.info("Registered member %s (pk=%s)", member_id, member_pk)
        return self.find_by_ref(member_pk)

    def find_by_id(self, member_id: str) -> Member:
        member = self._members.get_by_member_id(member_id)
        if not member:
            raise NotFoundError("Member not found")
        return member

    def find_by_ref(self, member_pk: int) -> Member:
        member = self._members.get_by_pk(member_pk)
        if not member:
            raise NotFoundError("Member not found")
        return member

    def update(self, member_id: str, changes: Mapping[str, Any]) -> Member:
        unknown = sorted(key for key in changes if key not in _EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}", fields=unknown)

        member = self.find_by_id(member_id)

        fields: dict[str, Any] = {}
        errors: list[ValidationError] = []
        for key, raw in changes.items():
            attr, parser = _EDITABLE_FIELDS[key]
            try:
                fields[attr] = parser(raw)
            except ValidationError as e:
                errors.append(e)
        if errors:
            raise ValidationError(
                "; ".join(e.message for e in errors),
                fields=[f for e in errors for f in e.fields],
            )

        for key in ("email", "phone"):
            if key not in fields:
                continue
            other = self._members.find_by_email_or_phone(**{key: fields[key]}, exclude_pk=member.member_pk)
            if other:
                raise ConflictError(f"Another member already uses this {key}")

        self._members.update_fields(member.member_pk, fields)
        logger.info("Updated member %s fields=%s", member_id, sorted(fields))
        return self.find_by_ref(member.member_pk)

    def delete(self, member_id: str) -> None:
        """Delete a member and all of its attendance records as one unit."""

        with self._transaction():
            member = self._members.get_by_member_id(member_id, for_update=True)
            if not member:
                raise NotFoundError("Member not found")
            removed = self._attendance.delete_for_member(member.member_pk)
            self._members.delete(member.member_pk)

        logger.info("Deleted member %s with %d attendance records", member_id, removed)

    def list_members(self, page_request: PageRequest, member_filter: MemberFilter) -> Page[Member]:
        total = self._members.count(member_filter)
        items = self._members.list_page(member_filter, offset=page_request.offset, limit=page_request.limit)
        return Page(items=items, page=page_request.page, limit=page_request.limit, total=total)

    def present_members(self) -> Sequence[Member]:
        return self._members.list_present()

    def search(
        self,
        *,
        query: Optional[str] = None,
        status: Optional[MemberStatus] = None,
        membership_type: Optional[MembershipType] = None,
    ) -> Sequence[Member]:
        member_filter = MemberFilter(
            query=(query or "").strip() or None,
            status=status,
            membership_type=membership_type,
        )
        return self._members.list_all(member_filter)

    def issue_card(self, member_id: Optional[str]) -> Member:
        if not member_id:
            raise ValidationError("Member ID is required", fields=["memberId"])

        member = self.find_by_id(member_id)
        if member.issued_card:
            raise ConflictError("Card has already been issued to this member", status_code=400)

        self._members.update_fields(member.member_pk, {"issued_card": True})
        logger.info("Issued card to member %s", member_id)
        return self.find_by_ref(member.member_pk)

    def issue_pending_cards(self) -> Sequence[Member]:
        """Mark every member without a card as issued and return them."""

        pending = self._members.list_all(MemberFilter(issued_card=False))
        if not pending:
            return []

        with self._transaction():
            self._members.mark_cards_issued([m.member_pk for m in pending])
        logger.info("Issued cards to %d members", len(pending))

        updated = self._members.get_many(m.member_pk for m in pending)
        return [updated[m.member_pk] for m in pending if m.member_pk in updated]
