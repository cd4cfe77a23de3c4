from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..common.datetime_utils import age_in_years, isoformat
from ..core.enums import Department, Gender, MembershipType, MemberStatus


@dataclass(frozen=True)
class MemberProfile:
    """Validated registration data (no identity, no presence state yet)."""

    full_name: str
    gender: Gender
    phone: str
    email: str
    date_of_birth: date
    department: Department = Department.NONE
    membership_type: MembershipType = MembershipType.STUDENT


@dataclass(frozen=True)
class Member:
    """Domain entity: a registered member.

    ``member_pk`` is the storage reference used by attendance rows;
    ``member_id`` is the human-readable code (``YYMM`` + sequence).
    ``is_present`` is a cache of "an open attendance record exists".
    """

    member_pk: int
    member_id: str
    full_name: str
    gender: Gender
    phone: str
    email: str
    date_of_birth: date
    department: Department
    membership_type: MembershipType
    date_joined: datetime
    qr_code_url: str
    issued_card: bool = False
    status: MemberStatus = MemberStatus.ACTIVE
    is_present: bool = False
    last_check_in: Optional[datetime] = None
    last_check_out: Optional[datetime] = None

    @property
    def age(self) -> int:
        return age_in_years(self.date_of_birth)

    def to_dict(self) -> dict:
        return {
            "id": self.member_pk,
            "memberId": self.member_id,
            "fullName": self.full_name,
            "gender": self.gender.value,
            "phone": self.phone,
            "email": self.email,
            "dateOfBirth": self.date_of_birth.isoformat(),
            "age": self.age,
            "department": self.department.value,
            "membershipType": self.membership_type.value,
            "dateJoined": isoformat(self.date_joined),
            "qrCodeUrl": self.qr_code_url,
            "issuedCard": self.issued_card,
            "status": self.status.value,
            "isPresent": self.is_present,
            "lastCheckIn": isoformat(self.last_check_in),
            "lastCheckOut": isoformat(self.last_check_out),
        }

    def identity(self) -> dict:
        """The member fields embedded into attendance listings."""
        return {"memberId": self.member_id, "fullName": self.full_name, "email": self.email}


@dataclass(frozen=True)
class MemberFilter:
    status: Optional[MemberStatus] = None
    department: Optional[Department] = None
    membership_type: Optional[MembershipType] = None
    query: Optional[str] = None
    issued_card: Optional[bool] = None
