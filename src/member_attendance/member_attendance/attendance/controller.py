from __future__ import annotations

import logging

from flask import Flask, current_app, request

from ..auth.boundary import current_caller, require_roles
from ..common.datetime_utils import optional_datetime
from ..common.pagination import PageRequest
from ..common.validators import require_enum, require_non_empty, require_positive_int
from ..container import Container
from ..core.constants import DEFAULT_INACTIVE_DAYS, DEFAULT_TOP_LIMIT
from ..core.enums import AttendanceStatus, Role, TransitionSource
from ..http.responses import json_object, paginated, success
from ..reports.export import ATTENDANCE_COLUMNS, ExportSection, render_csv
from ..reports.service import parse_period
from .model import GeoPoint

logger = logging.getLogger(__name__)


def register(app: Flask, container: Container) -> None:
    admin_only = require_roles(container.tokens, Role.ADMIN, Role.SUPERADMIN)

    def _page_request() -> PageRequest:
        return PageRequest.from_args(
            request.args.get("page"),
            request.args.get("limit"),
            default_limit=current_app.config["DEFAULT_PAGE_LIMIT"],
        )

    def _window():
        return (
            optional_datetime(request.args.get("startDate"), field_name="startDate"),
            optional_datetime(request.args.get("endDate"), field_name="endDate"),
        )

    @app.route("/api/attendance", methods=["GET"], endpoint="attendance_list")
    @admin_only
    def attendance_list():
        status = request.args.get("status")
        page = container.ledger.list_entries(
            _page_request(),
            status=require_enum(status, AttendanceStatus, "status") if status else None,
            member_id=request.args.get("memberId") or None,
        )
        return paginated(page, "attendance")

    @app.route("/api/attendance/stats", methods=["GET"], endpoint="attendance_stats")
    @admin_only
    def attendance_stats():
        return success({"stats": container.reporting.attendance_counts().to_dict()})

    @app.route("/api/attendance/export", methods=["GET"], endpoint="attendance_export")
    @admin_only
    def attendance_export():
        start, end = _window()
        rows = container.reporting.attendance_rows(start, end)
        if request.args.get("format", "csv") != "csv":
            return success({"attendance": rows})

        content = render_csv([ExportSection("Attendance", ATTENDANCE_COLUMNS, rows)])
        return app.response_class(
            content,
            mimetype="text/csv",
            headers={"Content-Disposition": 'attachment; filename="attendance.csv"'},
        )

    @app.route("/api/attendance/member/<member_id>", methods=["GET"], endpoint="attendance_member_history")
    @admin_only
    def attendance_member_history(member_id: str):
        return paginated(container.ledger.member_history(member_id, _page_request()), "attendance")

    @app.route("/api/attendance/today", methods=["GET"], endpoint="attendance_today")
    @admin_only
    def attendance_today():
        entries = container.ledger.today_entries(container.clock())
        return success({"attendance": [e.to_dict() for e in entries]})

    @app.route("/api/attendance/analytics", methods=["GET"], endpoint="attendance_analytics")
    @admin_only
    def attendance_analytics():
        start, end = _window()
        buckets = container.reporting.daily_trends(start, end)
        return success({"analytics": [b.to_dict() for b in buckets]})

    @app.route("/api/attendance/heatmap", methods=["GET"], endpoint="attendance_heatmap")
    @admin_only
    def attendance_heatmap():
        return success({"heatmap": [c.to_dict() for c in container.reporting.heatmap()]})

    @app.route("/api/attendance/top-active", methods=["GET"], endpoint="attendance_top_active")
    @admin_only
    def attendance_top_active():
        top = container.reporting.top_active_members(
            parse_period(request.args.get("period")),
            require_positive_int(request.args.get("limit"), "limit", default=DEFAULT_TOP_LIMIT),
        )
        return success({"topMembers": [t.to_dict() for t in top]})

    @app.route("/api/attendance/inactive", methods=["GET"], endpoint="attendance_inactive")
    @admin_only
    def attendance_inactive():
        days = require_positive_int(request.args.get("days"), "days", default=DEFAULT_INACTIVE_DAYS)
        inactive = container.reporting.inactive_members(days)
        return success({"inactiveMembers": [i.to_dict() for i in inactive]})

    @app.route("/api/attendance/<int:attendance_id>", methods=["GET"], endpoint="attendance_get")
    @admin_only
    def attendance_get(attendance_id: int):
        return success({"attendance": container.ledger.get_entry(attendance_id).to_dict()})

    def _manual(transition, message: str):
        body = json_object()
        member_id = require_non_empty(body.get("memberId"), "memberId")
        kwargs = {"location": GeoPoint.from_payload(body.get("location")), "source": TransitionSource.MANUAL}
        if transition == "check_in":
            kwargs["notes"] = body.get("notes")
            record = container.presence.check_in(member_id, **kwargs)
        else:
            record = container.presence.check_out(member_id, **kwargs)

        logger.info("Manual %s for %s by admin %s", transition, member_id, current_caller().admin_id)
        member = container.member_registry.find_by_ref(record.member_pk)
        return success({"attendance": record.to_dict(member.identity())}, message)

    @app.route("/api/attendance/manual-check-in", methods=["POST"], endpoint="attendance_manual_check_in")
    @admin_only
    def attendance_manual_check_in():
        return _manual("check_in", "Manual check-in successful")

    @app.route("/api/attendance/manual-check-out", methods=["POST"], endpoint="attendance_manual_check_out")
    @admin_only
    def attendance_manual_check_out():
        return _manual("check_out", "Manual check-out successful")
