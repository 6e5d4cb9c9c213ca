from sqlalchemy.exc import OperationalError

from models import storage
from services.exceptions import StoreUnavailable

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, USER_EMAIL, USER_PASSWORD, bearer, login


def test_login_refresh_and_replay(client):
    resp = login(client, "a@x.com", "secret123")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["user"]["role"] == "admin"
    assert body["user"]["email"] == "a@x.com"
    assert body["user"]["is_authenticated"] is True
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 15 * 60
    assert body["access_token"] != body["refresh_token"]

    first = client.post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
    assert first.status_code == 200
    assert first.get_json()["refresh_token"] != body["refresh_token"]

    replay = client.post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
    assert replay.status_code == 401
    assert replay.get_json()["error"] == "INVALID_TOKEN"
    assert replay.headers["WWW-Authenticate"] == "Bearer"


def test_login_sets_http_only_cookies(client):
    resp = login(client)
    cookies = resp.headers.getlist("Set-Cookie")
    access = next(c for c in cookies if c.startswith("access_token="))
    refresh = next(c for c in cookies if c.startswith("refresh_token="))
    for header in (access, refresh):
        assert "HttpOnly" in header
        assert "SameSite=Lax" in header
    assert "Max-Age=900" in access
    assert f"Max-Age={7 * 24 * 3600}" in refresh
    assert client.get_cookie("refresh_token").value == resp.get_json()["refresh_token"]


def test_bad_password_and_unknown_email_are_indistinguishable(client):
    wrong = login(client, ADMIN_EMAIL, "wrong-password")
    unknown = login(client, "nobody@x.com", ADMIN_PASSWORD)
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.data == unknown.data
    assert wrong.get_json() == {
        "error": "INVALID_CREDENTIALS",
        "message": "Invalid email or password",
        "status": 401,
    }


def test_login_requires_both_fields(client):
    resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL})
    assert resp.status_code == 422
    assert resp.get_json()["error"] == "VALIDATION_ERROR"
    assert "password" in resp.get_json()["details"]


def test_refresh_from_cookie(client):
    login(client)
    old = client.get_cookie("refresh_token").value
    resp = client.post("/api/v1/auth/refresh")
    assert resp.status_code == 200
    assert client.get_cookie("refresh_token").value == resp.get_json()["refresh_token"]
    assert resp.get_json()["refresh_token"] != old


def test_refresh_without_token(client):
    resp = client.post("/api/v1/auth/refresh", json={})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "INVALID_TOKEN"


def test_logout_revokes_and_always_succeeds(client):
    token = login(client).get_json()["refresh_token"]
    resp = client.post("/api/v1/auth/logout", json={"refresh_token": token})
    assert resp.status_code == 200
    assert resp.get_json() == {"message": "Logged out successfully"}
    assert client.get_cookie("refresh_token") is None

    again = client.post("/api/v1/auth/logout", json={"refresh_token": token})
    assert again.status_code == 200
    assert client.post("/api/v1/auth/logout").status_code == 200
    assert client.post("/api/v1/auth/logout", json={"refresh_token": 12}).status_code == 200

    assert client.post("/api/v1/auth/refresh", json={"refresh_token": token}).status_code == 401


def test_me_with_bearer_and_cookie(app, client):
    access = login(client).get_json()["access_token"]
    via_cookie = client.get("/api/v1/auth/me")
    assert via_cookie.status_code == 200
    assert via_cookie.get_json()["user"]["profile"]["full_name"] == "Ada Admin"

    fresh = app.test_client()
    via_header = fresh.get("/api/v1/auth/me", headers=bearer(access))
    assert via_header.status_code == 200
    assert via_header.get_json()["user"]["id"] == app.config["SEED_ADMIN_ID"]


def test_me_without_token(client):
    resp = client.get("/api/v1/auth/me")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "UNAUTHENTICATED"
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_me_with_bad_or_wrong_class_token(app, client):
    resp = client.get("/api/v1/auth/me", headers=bearer("not.a.token"))
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "INVALID_TOKEN"

    refresh = login(client).get_json()["refresh_token"]
    fresh = app.test_client()
    resp = fresh.get("/api/v1/auth/me", headers=bearer(refresh))
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "INVALID_TOKEN"


def test_status_for_anonymous_and_signed_in(app, client):
    anon = client.get("/api/v1/auth/status")
    assert anon.status_code == 200
    assert anon.get_json() == {"authenticated": False, "user": None}

    rejected = client.get("/api/v1/auth/status", headers=bearer("garbage"))
    assert rejected.status_code == 200
    assert rejected.get_json()["authenticated"] is False

    access = login(client, USER_EMAIL, USER_PASSWORD).get_json()["access_token"]
    signed_in = app.test_client().get("/api/v1/auth/status", headers=bearer(access))
    assert signed_in.get_json()["authenticated"] is True
    assert signed_in.get_json()["user"]["role"] == "user"


def test_register_creates_user_with_profile(client):
    resp = client.post(
        "/api/v1/auth/register",
        json={
            "email": "New.Student@X.com",
            "password": "longenough",
            "full_name": "New Student",
            "student_id": "011201999",
            "department": "EEE",
        },
    )
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["email"] == "new.student@x.com"
    assert data["role"] == "user"
    assert data["profile"]["student_id"] == "011201999"
    assert data["profile"]["role"] == "student"
    assert "password_hash" not in data

    assert login(client, "new.student@x.com", "longenough").status_code == 200


def test_register_ignores_requested_role(client):
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": "sneaky@x.com", "password": "longenough", "full_name": "S", "role": "admin"},
    )
    assert resp.status_code == 201
    assert resp.get_json()["data"]["role"] == "user"


def test_register_duplicate_email_is_case_insensitive(client):
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": "STUDENT@x.com", "password": "longenough", "full_name": "Dup"},
    )
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "CONFLICT"


def test_register_duplicate_student_id(client):
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": "x2@x.com", "password": "longenough", "full_name": "Dup", "student_id": "011201001"},
    )
    assert resp.status_code == 409
    assert resp.get_json()["message"] == "A student with this ID already exists"


def test_register_validation(client):
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": "not-an-email", "password": "123", "full_name": ""},
    )
    assert resp.status_code == 422
    details = resp.get_json()["details"]
    assert {"email", "password", "full_name"} <= set(details)


def test_refresh_and_redirect(client):
    login(client)
    old = client.get_cookie("refresh_token").value
    resp = client.get("/api/v1/auth/refresh-and-redirect?to=/dashboard/courses")
    assert resp.status_code == 302
    assert resp.headers["Location"] == "/dashboard/courses"
    assert client.get_cookie("refresh_token").value != old


def test_refresh_and_redirect_rejects_offsite_target(client):
    login(client)
    resp = client.get("/api/v1/auth/refresh-and-redirect?to=//evil.example/steal")
    assert resp.status_code == 302
    assert resp.headers["Location"] == "/"


def test_refresh_and_redirect_without_valid_cookie_clears_cookies(client):
    login(client)
    client.set_cookie("refresh_token", "stale-value")
    resp = client.get("/api/v1/auth/refresh-and-redirect?to=/dashboard")
    assert resp.status_code == 302
    assert resp.headers["Location"] == "/"
    assert client.get_cookie("refresh_token") is None
    assert client.get_cookie("access_token") is None


def test_logout_all(app, client):
    first = login(client).get_json()
    second = login(app.test_client()).get_json()
    resp = client.post("/api/v1/auth/logout-all", headers=bearer(first["access_token"]))
    assert resp.status_code == 200
    assert resp.get_json()["revoked"] == 2
    for body in (first, second):
        again = client.post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
        assert again.status_code == 401


def test_change_password(app, client):
    body = login(client, USER_EMAIL, USER_PASSWORD).get_json()
    headers = bearer(body["access_token"])

    wrong = client.post(
        "/api/v1/auth/password",
        json={"current_password": "nope-nope", "new_password": "fresh-pass-1"},
        headers=headers,
    )
    assert wrong.status_code == 401

    resp = client.post(
        "/api/v1/auth/password",
        json={"current_password": USER_PASSWORD, "new_password": "fresh-pass-1"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.get_json()["revoked"] == 1

    stale = app.test_client().post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
    assert stale.status_code == 401
    assert login(client, USER_EMAIL, USER_PASSWORD).status_code == 401
    assert login(client, USER_EMAIL, "fresh-pass-1").status_code == 200


def test_store_outage_is_503_not_401(app, client, monkeypatch):
    service = app.extensions["session_service"]

    def down(*args, **kwargs):
        raise StoreUnavailable()

    monkeypatch.setattr(service.credentials, "find_by_email", down)
    resp = login(client)
    assert resp.status_code == 503
    assert resp.get_json()["error"] == "SERVICE_UNAVAILABLE"


def test_logout_survives_store_outage(app, client, monkeypatch):
    token = login(client).get_json()["refresh_token"]
    service = app.extensions["session_service"]

    def down(*args, **kwargs):
        raise OperationalError("UPDATE refresh_tokens", {}, Exception("gone"))

    monkeypatch.setattr(service.ledger, "revoke", down)
    resp = client.post("/api/v1/auth/logout", json={"refresh_token": token})
    assert resp.status_code == 200


def test_health(client, monkeypatch):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"

    def down():
        raise OperationalError("SELECT 1", {}, Exception("gone"))

    monkeypatch.setattr(storage, "ping", down)
    resp = client.get("/api/v1/health")
    assert resp.status_code == 503
    assert resp.get_json()["database"] == "unavailable"


def test_change_password_to_same_value_is_rejected(app, client):
    body = login(client, USER_EMAIL, USER_PASSWORD).get_json()
    resp = client.post(
        "/api/v1/auth/password",
        json={"current_password": USER_PASSWORD, "new_password": USER_PASSWORD},
        headers=bearer(body["access_token"]),
    )
    assert resp.status_code == 422
    assert resp.get_json()["error"] == "VALIDATION_ERROR"

    still_valid = app.test_client().post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
    assert still_valid.status_code == 200


def test_register_keeps_only_registration_fields(client):
    resp = client.post(
        "/api/v1/auth/register",
        json={
            "email": "limited@x.com",
            "password": "longenough",
            "full_name": "Limited",
            "batch": "2024",
            "avatar_url": "https://evil.example/a.png",
            "phone": "123",
            "gender": "x",
            "current_trimester": "251",
        },
    )
    assert resp.status_code == 201
    profile = resp.get_json()["data"]["profile"]
    assert profile["batch"] == "2024"
    assert profile["avatar_url"] == ""
    assert profile["phone"] is None
    assert profile["gender"] is None
    assert profile["current_trimester"] is None
