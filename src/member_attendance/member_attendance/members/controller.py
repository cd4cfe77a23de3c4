from __future__ import annotations

from flask import Flask, current_app, request

from ..attendance.model import GeoPoint
from ..auth.boundary import require_roles
from ..common.pagination import PageRequest
from ..common.validators import require_enum, require_non_empty
from ..container import Container
from ..core.enums import Department, MembershipType, MemberStatus, Role, TransitionSource
from ..http.responses import json_object, paginated, success
from .model import MemberFilter


def _optional_enum(value, enum_cls, field_name):
    return require_enum(value, enum_cls, field_name) if value else None


def register(app: Flask, container: Container) -> None:
    admin_only = require_roles(container.tokens, Role.ADMIN, Role.SUPERADMIN)
    superadmin_only = require_roles(container.tokens, Role.SUPERADMIN)

    def _transition_payload() -> tuple[str, GeoPoint | None]:
        body = json_object()
        member_id = require_non_empty(body.get("memberId"), "memberId")
        return member_id, GeoPoint.from_payload(body.get("location"))

    # ----- public -----

    @app.route("/api/members/register", methods=["POST"], endpoint="members_register")
    def members_register():
        member = container.member_registry.register(json_object())
        return success({"member": member.to_dict()}, "Member registered successfully", 201)

    @app.route("/api/members/check-in", methods=["POST"], endpoint="members_check_in")
    def members_check_in():
        member_id, location = _transition_payload()
        record = container.presence.check_in(member_id, location=location, source=TransitionSource.SELF)
        member = container.member_registry.find_by_ref(record.member_pk)
        return success({"attendance": record.to_dict(member.identity())}, "Check-in successful")

    @app.route("/api/members/check-out", methods=["POST"], endpoint="members_check_out")
    def members_check_out():
        member_id, location = _transition_payload()
        record = container.presence.check_out(member_id, location=location, source=TransitionSource.SELF)
        member = container.member_registry.find_by_ref(record.member_pk)
        return success({"attendance": record.to_dict(member.identity())}, "Check-out successful")

    # ----- admin -----

    # Registered before "/api/members/<member_id>" so the literal paths win.
    @app.route("/api/members/without-cards", methods=["GET"], endpoint="members_without_cards")
    @admin_only
    def members_without_cards():
        members = container.member_registry.issue_pending_cards()
        message = "Members retrieved and cards issued successfully" if members else "No members found without cards"
        return success({"members": [m.to_dict() for m in members]}, message)

    @app.route("/api/members/card/issue", methods=["POST"], endpoint="members_issue_card")
    @admin_only
    def members_issue_card():
        body = json_object()
        member = container.member_registry.issue_card(body.get("memberId"))
        return success({"member": member.to_dict()}, "Card issued successfully")

    @app.route("/api/members", methods=["GET"], endpoint="members_list")
    @admin_only
    def members_list():
        args = request.args
        page_request = PageRequest.from_args(
            args.get("page"), args.get("limit"), default_limit=current_app.config["DEFAULT_PAGE_LIMIT"]
        )
        member_filter = MemberFilter(
            status=_optional_enum(args.get("status"), MemberStatus, "status"),
            department=_optional_enum(args.get("department"), Department, "department"),
            membership_type=_optional_enum(args.get("membershipType"), MembershipType, "membershipType"),
        )
        page = container.member_registry.list_members(page_request, member_filter)
        return paginated(page, "members")

    @app.route("/api/members/present", methods=["GET"], endpoint="members_present")
    @admin_only
    def members_present():
        members = container.member_registry.present_members()
        return success({"members": [m.to_dict() for m in members]}, "Present members retrieved successfully")

    @app.route("/api/members/stats", methods=["GET"], endpoint="members_stats")
    @admin_only
    def members_stats():
        stats = container.reporting.member_counts()
        return success({"stats": stats.to_dict()}, "Member stats retrieved successfully")

    @app.route("/api/members/<member_id>", methods=["GET"], endpoint="members_get")
    @admin_only
    def members_get(member_id: str):
        member = container.member_registry.find_by_id(member_id)
        return success({"member": member.to_dict()}, "Member retrieved successfully")

    @app.route("/api/members/<member_id>", methods=["PUT"], endpoint="members_update")
    @admin_only
    def members_update(member_id: str):
        member = container.member_registry.update(member_id, json_object())
        return success({"member": member.to_dict()}, "Member updated successfully")

    @app.route("/api/members/<member_id>", methods=["DELETE"], endpoint="members_delete")
    @superadmin_only
    def members_delete(member_id: str):
        container.member_registry.delete(member_id)
        return success(None, "Member deleted successfully")
