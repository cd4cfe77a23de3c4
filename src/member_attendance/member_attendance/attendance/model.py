from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional

from ..common.datetime_utils import isoformat, minutes_between
from ..core.enums import AttendanceStatus
from ..core.exceptions import InvalidStateError, ValidationError


@dataclass(frozen=True)
class GeoPoint:
    """A GeoJSON point; coordinates are (longitude, latitude)."""

    lng: float
    lat: float

    @classmethod
    def from_payload(cls, payload: Any, *, field_name: str = "location") -> Optional["GeoPoint"]:
        if payload is None:
            return None
        try:
            if payload.get("type", "Point") != "Point":
                raise ValueError(payload.get("type"))
            lng, lat = payload["coordinates"]
            point = cls(lng=float(lng), lat=float(lat))
        except (AttributeError, KeyError, TypeError, ValueError):
            raise ValidationError(f"{field_name} must be a GeoJSON Point", fields=[field_name])
        if not (-180.0 <= point.lng <= 180.0 and -90.0 <= point.lat <= 90.0):
            raise ValidationError(f"{field_name} coordinates are out of range", fields=[field_name])
        return point

    def to_dict(self) -> dict:
        return {"type": "Point", "coordinates": [self.lng, self.lat]}


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one check-in/check-out session of a member.

    ``duration`` is derived from the two timestamps and is never set directly.
    """

    attendance_id: int
    member_pk: int
    check_in: datetime
    check_out: Optional[datetime] = None
    duration: int = 0
    status: AttendanceStatus = AttendanceStatus.CHECKED_IN
    check_in_location: Optional[GeoPoint] = None
    check_out_location: Optional[GeoPoint] = None
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == AttendanceStatus.CHECKED_IN and self.check_out is None

    @property
    def formatted_duration(self) -> str:
        return f"{self.duration // 60}h {self.duration % 60}m"

    def closed(self, at: datetime, location: Optional[GeoPoint] = None) -> "AttendanceRecord":
        """Return the record as it looks after check-out at ``at``."""
        if not self.is_open:
            raise InvalidStateError(f"Attendance record {self.attendance_id} is already checked out")
        if at < self.check_in:
            raise ValidationError("Check-out cannot be earlier than check-in", fields=["checkOut"])
        return replace(
            self,
            check_out=at,
            duration=minutes_between(self.check_in, at),
            status=AttendanceStatus.CHECKED_OUT,
            check_out_location=location,
        )

    def to_dict(self, member: Optional[dict] = None) -> dict:
        data = {
            "id": self.attendance_id,
            "member": member if member is not None else self.member_pk,
            "checkIn": isoformat(self.check_in),
            "checkOut": isoformat(self.check_out),
            "duration": self.duration,
            "formattedDuration": self.formatted_duration,
            "status": self.status.value,
            "notes": self.notes,
        }
        if self.check_in_location is not None:
            data["checkInLocation"] = self.check_in_location.to_dict()
        if self.check_out_location is not None:
            data["checkOutLocation"] = self.check_out_location.to_dict()
        return data


@dataclass(frozen=True)
class MemberVisitStats:
    """Read-model: attendance aggregated per member (optimised for reporting queries)."""

    member_pk: int
    total_visits: int
    total_duration: int
    last_check_in: datetime

    @property
    def avg_duration(self) -> float:
        return self.total_duration / self.total_visits if self.total_visits else 0.0


@dataclass(frozen=True)
class AttendanceFilter:
    member_pk: Optional[int] = None
    status: Optional[AttendanceStatus] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
