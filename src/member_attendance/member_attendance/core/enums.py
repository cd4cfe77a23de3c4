from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Caller roles supplied by the authorization boundary."""

    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class Department(str, Enum):
    ERA_OPENLABS = "ERA OPENLABS"
    ERA_SOFTWARES = "ERA Softwares"
    ERA_MANUFACTURING = "ERA Manufacturing"
    ERA_EDUCATION = "ERA Education"
    NONE = "None"


class MembershipType(str, Enum):
    STUDENT = "Student"
    STAFF = "Staff"
    EXECUTIVE = "Executive"
    GUEST = "Guest"
    MANAGING_LEAD = "Managing Lead"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class AttendanceStatus(str, Enum):
    """Lifecycle of an attendance record as stored in the database."""

    CHECKED_IN = "checked-in"
    CHECKED_OUT = "checked-out"


class TransitionSource(str, Enum):
    SELF = "self"
    MANUAL = "manual"


class ReportPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class ReportType(str, Enum):
    ATTENDANCE = "attendance"
    MEMBERS = "members"
    ANALYTICS = "analytics"


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    PDF = "pdf"
