"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- GET  /auth/refresh-and-redirect
- POST /auth/logout
- POST /auth/logout-all
- GET  /auth/me
- GET  /auth/status
- POST /auth/password

Access tokens are short-lived and stateless; refresh tokens are tracked in the
ledger and rotated on every use. Both are returned in the JSON body and as
HttpOnly cookies.
"""
from __future__ import annotations

from urllib.parse import urlsplit

from flask import Blueprint, request, jsonify, g, abort, redirect
from marshmallow import ValidationError

from models.schemas.account import (
    AccountOutSchema,
    IdentityOutSchema,
    LoginSchema,
    PasswordChangeSchema,
    RefreshSchema,
    RegisterSchema,
)
from services.exceptions import InvalidToken
from services.sessions import TokenPair
from utils.decorators import auth_optional, get_auth_settings, get_session_service, jwt_required

bp = Blueprint("auth", __name__)

register_schema = RegisterSchema()
login_schema = LoginSchema()
refresh_schema = RefreshSchema()
password_change_schema = PasswordChangeSchema()
account_out_schema = AccountOutSchema()
identity_out_schema = IdentityOutSchema()


def _token_body(tokens: TokenPair) -> dict:
    settings = get_auth_settings()
    return {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_type": "bearer",
        "expires_in": int(settings.access_ttl.total_seconds()),
    }


def _set_auth_cookies(response, tokens: TokenPair):
    settings = get_auth_settings()
    common = {"httponly": True, "secure": settings.cookie_secure, "samesite": "Lax", "path": "/"}
    response.set_cookie(
        settings.access_cookie,
        tokens.access_token,
        max_age=int(settings.access_ttl.total_seconds()),
        **common,
    )
    response.set_cookie(
        settings.refresh_cookie,
        tokens.refresh_token,
        max_age=int(settings.refresh_ttl.total_seconds()),
        **common,
    )
    return response


def _clear_auth_cookies(response):
    settings = get_auth_settings()
    for name in (settings.access_cookie, settings.refresh_cookie):
        response.delete_cookie(name, path="/", secure=settings.cookie_secure, httponly=True, samesite="Lax")
    return response


def _refresh_token_from_request() -> str | None:
    payload = refresh_schema.load(request.get_json(silent=True) or {})
    return payload.get("refresh_token") or request.cookies.get(get_auth_settings().refresh_cookie)


def _safe_return_path(value: str | None) -> str:
    """Only same-site absolute paths; anything else falls back to '/'."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return "/"
    parts = urlsplit(value)
    if parts.scheme or parts.netloc:
        return "/"
    return value


@bp.post("/register")
def register():
    """
    Register a new student account (role "user") with its profile.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            password: { type: string }
            full_name: { type: string }
            student_id: { type: string }
            department: { type: string }
            batch: { type: string }
            program: { type: string }
    responses:
      201:
        description: Created
      409:
        description: Email or student id already registered
      422:
        description: Validation error
    """
    data = register_schema.load(request.get_json(silent=True) or {})
    email = data.pop("email")
    password = data.pop("password")
    try:
        account = get_session_service().register(email, password, profile=data)
    except ValueError as exc:
        abort(422, description=str(exc))
    return jsonify({"data": account_out_schema.dump(account)}), 201


@bp.post("/login")
def login():
    """
    Login: return the identity plus access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens, also set as cookies)
      401:
        description: Invalid email or password
    """
    data = login_schema.load(request.get_json(silent=True) or {})
    result = get_session_service().sign_in(data["email"], data["password"])
    body = {"user": identity_out_schema.dump(result.identity)}
    body.update(_token_body(result.tokens))
    return _set_auth_cookies(jsonify(body), result.tokens), 200


@bp.post("/refresh")
def refresh():
    """
    Exchange a refresh token for a new access/refresh pair (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         required: false
         schema:
           type: object
           properties:
             refresh_token: { type: string, description: "falls back to the refresh cookie" }
    responses:
      200:
        description: OK (new tokens)
      401:
        description: Invalid or expired token
    """
    token = _refresh_token_from_request()
    if not token:
        raise InvalidToken()
    tokens = get_session_service().refresh(token)
    return _set_auth_cookies(jsonify(_token_body(tokens)), tokens), 200


@bp.get("/refresh-and-redirect")
def refresh_and_redirect():
    """
    Rotate tokens from the refresh cookie and redirect back to ?to=<path>.
    On failure the cookies are cleared and the browser is sent to "/".
    ---
    tags:
      - Auth
    parameters:
      - in: query
        name: to
        type: string
    responses:
      302:
        description: Redirect
    """
    token = request.cookies.get(get_auth_settings().refresh_cookie)
    return_to = _safe_return_path(request.args.get("to"))
    if token:
        try:
            tokens = get_session_service().refresh(token)
        except InvalidToken:
            pass
        else:
            return _set_auth_cookies(redirect(return_to), tokens)
    return _clear_auth_cookies(redirect("/"))


@bp.post("/logout")
def logout():
    """
    Logout: revokes the refresh token (body or cookie). Always succeeds.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         required: false
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: Logged out
    """
    try:
        token = _refresh_token_from_request()
    except ValidationError:
        token = request.cookies.get(get_auth_settings().refresh_cookie)
    get_session_service().sign_out(token)
    return _clear_auth_cookies(jsonify({"message": "Logged out successfully"})), 200


@bp.post("/logout-all")
@jwt_required()
def logout_all():
    """
    Revoke every refresh token of the current account
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    revoked = get_session_service().sign_out_everywhere(g.current_identity.account_id)
    return _clear_auth_cookies(jsonify({"message": "Logged out everywhere", "revoked": revoked})), 200


@bp.get("/me")
@jwt_required()
def me():
    """
    Current identity with profile
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify({"user": identity_out_schema.dump(g.current_identity)}), 200


@bp.get("/status")
@auth_optional()
def status():
    """
    Whether the caller is signed in; anonymous callers get 200 as well
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK
    """
    identity = g.current_identity
    return jsonify(
        {
            "authenticated": identity is not None,
            "user": identity_out_schema.dump(identity) if identity else None,
        }
    ), 200


@bp.post("/password")
@jwt_required()
def change_password():
    """
    Change own password; every session of the account is ended
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             current_password: { type: string }
             new_password: { type: string }
    responses:
      200:
        description: Password changed
      401:
        description: Wrong current password
    """
    data = password_change_schema.load(request.get_json(silent=True) or {})
    try:
        revoked = get_session_service().change_password(
            g.current_identity.account_id, data["current_password"], data["new_password"]
        )
    except ValueError as exc:
        abort(422, description=str(exc))
    body = jsonify({"message": "Password changed, please sign in again", "revoked": revoked})
    return _clear_auth_cookies(body), 200
