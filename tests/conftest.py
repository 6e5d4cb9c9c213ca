import pytest

from api import create_app
from models import storage

ADMIN_EMAIL = "a@x.com"
ADMIN_PASSWORD = "secret123"
USER_EMAIL = "student@x.com"
USER_PASSWORD = "studentpass"


def _seed(service):
    admin = service.create_account(
        ADMIN_EMAIL, ADMIN_PASSWORD, role="admin", profile={"full_name": "Ada Admin"}
    )
    user = service.create_account(
        USER_EMAIL,
        USER_PASSWORD,
        role="user",
        profile={"full_name": "Sam Student", "student_id": "011201001", "department": "CSE"},
    )
    return admin.id, user.id


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        admin_id, user_id = _seed(app.extensions["session_service"])
    app.config["SEED_ADMIN_ID"] = admin_id
    app.config["SEED_USER_ID"] = user_id
    yield app
    storage.close()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    with app.app_context():
        yield app.extensions["session_service"]
        storage.close()


@pytest.fixture
def admin_id(app):
    return app.config["SEED_ADMIN_ID"]


@pytest.fixture
def user_id(app):
    return app.config["SEED_USER_ID"]


def login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
