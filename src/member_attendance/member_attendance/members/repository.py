from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping, Optional, Protocol, Sequence

from .model import Member, MemberFilter, MemberProfile


class MemberRepository(Protocol):
    """Repository interface for members.

    Note: services depend on this interface, never on a concrete database.
    """

    def get_by_member_id(self, member_id: str, *, for_update: bool = False) -> Optional[Member]:
        raise NotImplementedError

    def get_by_pk(self, member_pk: int) -> Optional[Member]:
        raise NotImplementedError

    def get_many(self, member_pks: Iterable[int]) -> Mapping[int, Member]:
        raise NotImplementedError

    def find_by_email_or_phone(
        self, *, email: Optional[str] = None, phone: Optional[str] = None, exclude_pk: Optional[int] = None
    ) -> Optional[Member]:
        raise NotImplementedError

    def get_greatest_member_id(self) -> Optional[str]:
        raise NotImplementedError

    def create(
        self,
        *,
        member_id: str,
        profile: MemberProfile,
        qr_code_url: str,
        date_joined: datetime,
    ) -> int:
        raise NotImplementedError

    def update_fields(self, member_pk: int, fields: Mapping[str, object]) -> bool:
        """Update profile/status columns keyed by ``Member`` attribute name."""

        raise NotImplementedError

    def set_presence(
        self,
        member_pk: int,
        *,
        is_present: bool,
        last_check_in: Optional[datetime] = None,
        last_check_out: Optional[datetime] = None,
    ) -> bool:
        """Flip the presence flag; timestamps left as ``None`` are not touched."""

        raise NotImplementedError

    def delete(self, member_pk: int) -> bool:
        raise NotImplementedError

    def list_page(self, member_filter: MemberFilter, *, offset: int, limit: int) -> Sequence[Member]:
        raise NotImplementedError

    def count(self, member_filter: MemberFilter) -> int:
        raise NotImplementedError

    def list_all(self, member_filter: Optional[MemberFilter] = None) -> Sequence[Member]:
        raise NotImplementedError

    def list_present(self) -> Sequence[Member]:
        raise NotImplementedError

    def mark_cards_issued(self, member_pks: Sequence[int]) -> int:
        raise NotImplementedError
