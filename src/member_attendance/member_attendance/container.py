from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Callable, Optional

from .attendance.ledger import AttendanceLedger
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .auth.boundary import TokenAuthority
from .common.datetime_utils import now_utc
from .core.constants import QR_URL_PREFIX
from .database.connection import DBConfig, DatabaseConnection
from .database.mysql_base import transaction
from .members.mysql_member_repository import MySQLMemberRepository
from .members.repository import MemberRepository
from .members.service import MemberRegistry, TransactionFactory
from .presence.coordinator import PresenceCoordinator
from .qrcodes.generator import ArtifactGenerator, QRCodeGenerator
from .reports.export import ReportExporter
from .reports.service import ReportingEngine


@dataclass(frozen=True)
class Container:
    members_repo: MemberRepository
    attendance_repo: AttendanceRepository
    artifacts: ArtifactGenerator
    tokens: TokenAuthority

    member_registry: MemberRegistry
    ledger: AttendanceLedger
    presence: PresenceCoordinator
    reporting: ReportingEngine
    exporter: ReportExporter

    clock: Callable[[], datetime] = now_utc


def assemble(
    *,
    members_repo: MemberRepository,
    attendance_repo: AttendanceRepository,
    artifacts: ArtifactGenerator,
    tokens: TokenAuthority,
    transaction_factory: Optional[TransactionFactory] = None,
    clock: Callable[[], datetime] = now_utc,
) -> Container:
    """Wire services around already-built repositories (MySQL or in-memory)."""

    ledger = AttendanceLedger(attendance_repo, members_repo)
    member_registry = MemberRegistry(
        members_repo,
        attendance_repo,
        artifacts,
        transaction=transaction_factory,
        clock=clock,
    )
    presence = PresenceCoordinator(
        members_repo,
        ledger,
        attendance_repo,
        transaction=transaction_factory,
        clock=clock,
    )
    reporting = ReportingEngine(members_repo, attendance_repo, clock=clock)

    return Container(
        members_repo=members_repo,
        attendance_repo=attendance_repo,
        artifacts=artifacts,
        tokens=tokens,
        member_registry=member_registry,
        ledger=ledger,
        presence=presence,
        reporting=reporting,
        exporter=ReportExporter(reporting),
        clock=clock,
    )


def build_container(
    *,
    db_config: dict,
    qr_code_dir: str,
    secret_key: str,
    token_max_age_seconds: int,
    qr_url_prefix: str = QR_URL_PREFIX,
) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))

    return assemble(
        members_repo=MySQLMemberRepository(conn),
        attendance_repo=MySQLAttendanceRepository(conn),
        artifacts=QRCodeGenerator(qr_code_dir, url_prefix=qr_url_prefix),
        tokens=TokenAuthority(secret_key, max_age_seconds=token_max_age_seconds),
        transaction_factory=partial(transaction, conn),
    )
