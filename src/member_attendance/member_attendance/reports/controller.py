from __future__ import annotations

from flask import Flask, request

from ..auth.boundary import require_roles
from ..common.datetime_utils import optional_datetime
from ..common.validators import require_enum, require_positive_int
from ..container import Container
from ..core.constants import DEFAULT_INACTIVE_DAYS, DEFAULT_TOP_LIMIT
from ..core.enums import AttendanceStatus, MembershipType, MemberStatus, Role
from ..http.responses import json_object, success
from .service import parse_period


def register(app: Flask, container: Container) -> None:
    """Admin dashboard, reports, live monitoring and search."""

    admin_only = require_roles(container.tokens, Role.ADMIN, Role.SUPERADMIN)

    def _window(source):
        return (
            optional_datetime(source.get("startDate"), field_name="startDate"),
            optional_datetime(source.get("endDate"), field_name="endDate"),
        )

    def _optional_enum(name, enum_cls):
        value = request.args.get(name)
        return require_enum(value, enum_cls, name) if value else None

    # ----- dashboard -----

    @app.route("/api/admin/dashboard", methods=["GET"], endpoint="admin_dashboard")
    @admin_only
    def admin_dashboard():
        return success(container.reporting.dashboard().to_dict())

    @app.route("/api/admin/dashboard/today", methods=["GET"], endpoint="admin_dashboard_today")
    @admin_only
    def admin_dashboard_today():
        return success(container.reporting.today_stats().to_dict())

    @app.route("/api/admin/dashboard/weekly", methods=["GET"], endpoint="admin_dashboard_weekly")
    @admin_only
    def admin_dashboard_weekly():
        buckets = container.reporting.weekly_stats()
        return success({"weeklyStats": [b.to_dict() for b in buckets]})

    @app.route("/api/admin/dashboard/monthly", methods=["GET"], endpoint="admin_dashboard_monthly")
    @admin_only
    def admin_dashboard_monthly():
        buckets = container.reporting.monthly_stats()
        return success({"monthlyStats": [b.to_dict() for b in buckets]})

    # ----- reports -----

    @app.route("/api/admin/reports/attendance", methods=["GET"], endpoint="admin_report_attendance")
    @admin_only
    def admin_report_attendance():
        start, end = _window(request.args)
        rows = container.reporting.attendance_report(start, end)
        return success({"report": [r.to_dict() for r in rows]})

    @app.route("/api/admin/reports/members", methods=["GET"], endpoint="admin_report_members")
    @admin_only
    def admin_report_members():
        rows = container.reporting.members_report()
        return success({"report": [r.to_dict() for r in rows]})

    @app.route("/api/admin/reports/analytics", methods=["GET"], endpoint="admin_report_analytics")
    @admin_only
    def admin_report_analytics():
        start, end = _window(request.args)
        return success(container.reporting.analytics_report(start, end).to_dict())

    @app.route("/api/admin/reports/analytics/top-active", methods=["GET"], endpoint="admin_report_top_active")
    @admin_only
    def admin_report_top_active():
        top = container.reporting.top_active_members(
            parse_period(request.args.get("period")),
            require_positive_int(request.args.get("limit"), "limit", default=DEFAULT_TOP_LIMIT),
        )
        return success({"members": [t.to_dict() for t in top]})

    @app.route("/api/admin/reports/analytics/inactive", methods=["GET"], endpoint="admin_report_inactive")
    @admin_only
    def admin_report_inactive():
        days = require_positive_int(request.args.get("days"), "days", default=DEFAULT_INACTIVE_DAYS)
        inactive = container.reporting.inactive_members(days)
        return success({"members": [i.to_dict() for i in inactive]})

    @app.route("/api/admin/reports/export", methods=["POST"], endpoint="admin_report_export")
    @admin_only
    def admin_report_export():
        # Parameters may come as query args or as a JSON body.
        params = {**json_object(), **request.args.to_dict()}
        start, end = _window(params)
        result = container.exporter.export(params.get("type"), params.get("format"), start=start, end=end)

        if result.content is None:
            return success({"data": result.data})
        return app.response_class(
            result.content,
            mimetype=result.mimetype,
            headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
        )

    # ----- live monitoring -----

    @app.route("/api/admin/live/present", methods=["GET"], endpoint="admin_live_present")
    @admin_only
    def admin_live_present():
        return success({"members": container.reporting.present_members()})

    @app.route("/api/admin/live/stats", methods=["GET"], endpoint="admin_live_stats")
    @admin_only
    def admin_live_stats():
        return success(container.reporting.live_stats().to_dict())

    # ----- search -----

    @app.route("/api/admin/search/members", methods=["GET"], endpoint="admin_search_members")
    @admin_only
    def admin_search_members():
        members = container.member_registry.search(
            query=request.args.get("query"),
            status=_optional_enum("status", MemberStatus),
            membership_type=_optional_enum("membershipType", MembershipType),
        )
        return success({"members": [m.to_dict() for m in members]})

    @app.route("/api/admin/search/attendance", methods=["GET"], endpoint="admin_search_attendance")
    @admin_only
    def admin_search_attendance():
        start, end = _window(request.args)
        entries = container.ledger.search_entries(
            member_id=request.args.get("memberId") or None,
            start=start,
            end=end,
            status=_optional_enum("status", AttendanceStatus),
        )
        return success({"attendance": [e.to_dict() for e in entries]})
