from __future__ import annotations

import logging
from typing import Any, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from ..common.pagination import Page
from ..core.exceptions import DomainError, ValidationError

logger = logging.getLogger(__name__)


def json_object() -> dict:
    """The request body as a dict; a missing body is empty, any other JSON value is rejected."""
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def success(data: Any = None, message: str = "Success", status: int = 200):
    return jsonify({"success": True, "message": message, "data": data}), status


def paginated(page: Page, key: str, message: str = "Success"):
    """List response whose items are rendered with their ``to_dict``."""
    body = {
        "success": True,
        "message": message,
        "data": {key: [item.to_dict() for item in page.items]},
        "pagination": page.metadata(),
    }
    return jsonify(body), 200


def error(message: str, status: int, *, kind: str, errors: Optional[list] = None):
    body = {"success": False, "kind": kind, "message": message}
    if errors:
        body["errors"] = errors
    return jsonify(body), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        errors = e.fields if isinstance(e, ValidationError) else None
        if e.status_code >= 500:
            logger.error("%s: %s", e.kind, e.message)
        return error(e.message, e.status_code, kind=e.kind, errors=errors)

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return error(e.description or e.name, e.code or 500, kind=e.name.upper().replace(" ", "_"))

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception("Unhandled error")
        return error("Internal server error", 500, kind="INTERNAL_ERROR")
