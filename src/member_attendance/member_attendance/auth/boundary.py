from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional

from flask import g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..core.enums import Role
from ..core.exceptions import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)

TOKEN_SALT = "member-attendance-admin"


@dataclass(frozen=True)
class Caller:
    """Authenticated admin making the request."""

    admin_id: str
    role: Role


class TokenAuthority:
    """Issues and verifies signed bearer tokens carrying a ``Caller``.

    Admin accounts are managed elsewhere; this only proves who is calling.
    """

    def __init__(self, secret_key: str, *, max_age_seconds: int):
        self._serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self._max_age = max_age_seconds

    def issue_token(self, admin_id: str, role: Role) -> str:
        return self._serializer.dumps({"sub": str(admin_id), "role": Role(role).value})

    def resolve(self, token: str) -> Caller:
        try:
            payload = self._serializer.loads(token, max_age=self._max_age)
        except SignatureExpired:
            raise AuthenticationError("Token has expired")
        except BadSignature:
            raise AuthenticationError("Invalid token")

        try:
            return Caller(admin_id=str(payload["sub"]), role=Role(payload["role"]))
        except (KeyError, TypeError, ValueError):
            raise AuthenticationError("Invalid token")


def bearer_token(header: Optional[str]) -> str:
    scheme, _, token = (header or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Not authorized to access this route")
    return token.strip()


def current_caller() -> Caller:
    caller = g.get("caller")
    if caller is None:
        raise AuthenticationError("Not authorized to access this route")
    return caller


def require_roles(authority: TokenAuthority, *roles: Role) -> Callable:
    """Decorator: resolve the caller from the Authorization header and check its role."""
    allowed = set(roles) or set(Role)

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            caller = authority.resolve(bearer_token(request.headers.get("Authorization")))
            if caller.role not in allowed:
                logger.warning("Forbidden: admin %s (%s) on %s", caller.admin_id, caller.role.value, request.path)
                raise AuthorizationError("You do not have permission to perform this action")
            g.caller = caller
            return view(*args, **kwargs)

        return wrapper

    return decorator
