"""
Account administration (admin only):
- GET    /users
- POST   /users
- PATCH  /users/<user_id>/role
- POST   /users/<user_id>/revoke-sessions
- DELETE /users/<user_id>
"""
from __future__ import annotations

from typing import Tuple

from flask import Blueprint, request, jsonify, g, abort

from models import storage
from models.account import Account
from models.schemas.account import AccountCreateSchema, AccountOutSchema, RoleUpdateSchema
from utils.decorators import get_session_service, roles_required

MAX_LIMIT = 100

SORT_COLUMNS = {
    "email": Account.email,
    "created_at": Account.created_at,
    "role": Account.role,
}

bp = Blueprint("users", __name__)

account_create_schema = AccountCreateSchema()
role_update_schema = RoleUpdateSchema()
account_out_schema = AccountOutSchema()
account_list_out_schema = AccountOutSchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def parse_sort(default="-created_at"):
    sort = request.args.get("sort", default)
    desc = sort.startswith("-")
    key = sort[1:] if desc else sort
    col = SORT_COLUMNS.get(key)
    if col is None:
        abort(400, description=f"Unsupported sort field. Allowed: {', '.join(SORT_COLUMNS)}")
    return (col.desc() if desc else col.asc(),)


@bp.get("/users")
@roles_required(["admin"])
def list_users():
    """
    List accounts (paginated)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: query
        name: role
        type: string
      - in: query
        name: page
        type: integer
      - in: query
        name: limit
        type: integer
      - in: query
        name: sort
        type: string
    responses:
      200: { description: OK }
      403: { description: Forbidden }
    """
    session = storage.get_session()
    page, limit = parse_pagination()
    order_by = parse_sort()

    query = session.query(Account).filter(Account.deleted_at.is_(None))
    role = request.args.get("role")
    if role:
        query = query.filter(Account.role == role)

    total = query.count()
    rows = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        {
            "data": account_list_out_schema.dump(rows),
            "meta": {
                "page": page,
                "limit": limit,
                "total": total,
                "has_more": page * limit < total,
            },
        }
    )


@bp.post("/users")
@roles_required(["admin"])
def create_user():
    """
    Admin-only: create an account with a role
    ---
    tags:
      - Users
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
             email: { type: string }
             password: { type: string }
             role: { type: string, enum: [admin, user] }
             profile: { type: object }
    responses:
      201: { description: Created }
      409: { description: Email already registered }
    """
    data = account_create_schema.load(request.get_json(silent=True) or {})
    try:
        account = get_session_service().create_account(
            data["email"], data["password"], role=data["role"], profile=data.get("profile")
        )
    except ValueError as exc:
        abort(422, description=str(exc))
    return jsonify({"data": account_out_schema.dump(account)}), 201


@bp.patch("/users/<user_id>/role")
@roles_required(["admin"])
def set_role(user_id: str):
    """
    Admin-only: change an account's role.
    Takes effect on the account's next request; access tokens are not trusted for role.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
      -  in: body
         name: body
         schema:
           type: object
           properties:
             role: { type: string, enum: [admin, user] }
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    data = role_update_schema.load(request.get_json(silent=True) or {})
    if user_id == g.current_identity.account_id and data["role"] != "admin":
        abort(409, description="Admins cannot demote themselves")
    account = get_session_service().set_role(user_id, data["role"])
    return jsonify({"data": account_out_schema.dump(account)}), 200


@bp.post("/users/<user_id>/revoke-sessions")
@roles_required(["admin"])
def revoke_sessions(user_id: str):
    """
    Admin-only: revoke every refresh token of an account
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    service = get_session_service()
    account = service.credentials.get(user_id)
    revoked = service.sign_out_everywhere(account.id)
    return jsonify({"data": {"id": account.id, "revoked": revoked}}), 200


@bp.delete("/users/<user_id>")
@roles_required(["admin"])
def delete_user(user_id: str):
    """
    Admin-only: soft-delete an account and revoke all of its refresh tokens
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
    responses:
      200: { description: Deleted }
      404: { description: Not found }
    """
    if user_id == g.current_identity.account_id:
        abort(409, description="Admins cannot delete their own account")
    revoked = get_session_service().delete_account(user_id)
    return jsonify({"data": {"id": user_id, "revoked": revoked}}), 200
