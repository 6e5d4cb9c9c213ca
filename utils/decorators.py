"""
Request authorization.

The access token is taken from "Authorization: Bearer <token>" or, failing
that, from the access-token cookie. On success the Identity (re-read from the
account, with profile) is placed on g.current_identity for the handler.
"""
from __future__ import annotations

from functools import wraps
from typing import Iterable, Optional

from flask import current_app, g, request

from services.exceptions import Forbidden, InvalidToken, Unauthenticated
from services.identity import Identity


def get_session_service():
    return current_app.extensions["session_service"]


def get_auth_settings():
    return current_app.extensions["auth_settings"]


def extract_token(req=None) -> Optional[str]:
    req = req or request
    auth = req.headers.get("Authorization", "")
    parts = auth.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
        return parts[1].strip()
    token = req.cookies.get(get_auth_settings().access_cookie)
    return token or None


def authenticate(req=None) -> Identity:
    token = extract_token(req)
    if not token:
        raise Unauthenticated()
    return get_session_service().identify(token)


def require_role(identity: Identity, role: str) -> Identity:
    if identity is None or identity.role != role:
        raise Forbidden()
    return identity


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            g.current_identity = authenticate()
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: Iterable[str]):
    """
    Allow access if the caller's role is ANY of required_roles, else 403.
    """
    req = set(required_roles or [])

    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            identity = g.current_identity
            if identity.role not in req:
                raise Forbidden()
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def auth_optional():
    """Like jwt_required, but an absent or rejected token means anonymous (None)."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                g.current_identity = authenticate()
            except (Unauthenticated, InvalidToken):
                g.current_identity = None
            return fn(*args, **kwargs)

        return wrapper

    return decorator
