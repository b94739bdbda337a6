import logging

import pytest
from fastapi.testclient import TestClient

from workshop_board.config import Settings
from workshop_board.database import Database
from workshop_board.main import create_app
from workshop_board.token_crypto import encrypt_token
from workshop_board.utils import create_jwt

from conftest import JWT_SECRET

PROTECTED = [
    ("GET", "/users/me"),
    ("GET", "/users"),
    ("POST", "/users"),
    ("PUT", "/users/1"),
    ("DELETE", "/users/1"),
    ("POST", "/auth/verify"),
    ("GET", "/appointments"),
    ("POST", "/appointments"),
    ("GET", "/appointments/1"),
    ("PUT", "/appointments/1"),
    ("DELETE", "/appointments/1"),
    ("DELETE", "/appointments/delete-all-no-show"),
    ("POST", "/appointments/1/create-job-order"),
    ("GET", "/job-orders"),
    ("POST", "/job-orders"),
    ("GET", "/job-orders/1"),
    ("PUT", "/job-orders/1"),
    ("DELETE", "/job-orders/1"),
    ("PATCH", "/job-orders/1/toggle-important"),
    ("PATCH", "/job-orders/1/submit-qi"),
    ("PATCH", "/job-orders/1/approve-qi"),
    ("PATCH", "/job-orders/1/reject-qi"),
    ("PATCH", "/job-orders/1/complete"),
    ("PATCH", "/job-orders/1/mark-complete"),
    ("PATCH", "/job-orders/1/redo"),
    ("POST", "/job-orders/end-of-day"),
    ("POST", "/job-orders/check-carry-over"),
    ("GET", "/job-orders/snapshots"),
    ("GET", "/job-orders/snapshot/2026-03-02"),
    ("GET", "/job-orders/queues/by-status?statuses=QI"),
    ("GET", "/job-orders/technicians/available"),
    ("GET", "/job-orders/walk-in-slots"),
    ("GET", "/job-orders/workshop-slots"),
    ("GET", "/job-orders/available-for-slot"),
    ("GET", "/job-orders/dashboard"),
    ("POST", "/appointments/1/check-conflicts"),
    ("POST", "/appointments/1/resolve-conflicts"),
]


@pytest.fixture
def storeless_client():
    # tables are never created, so any query would fail with a 500
    app = create_app(Settings(jwt_secret=JWT_SECRET), Database("sqlite://"))
    return TestClient(app, raise_server_exceptions=False)


@pytest.mark.parametrize("method,path", PROTECTED)
def test_no_session_is_rejected_before_the_store(storeless_client, method, path):
    res = storeless_client.request(method, path)
    assert res.status_code == 401
    assert res.json() == {"error": "Access token required"}


@pytest.mark.parametrize("path", ["/job-orders", "/appointments", "/users"])
def test_malformed_body_without_session_is_unauthorized(storeless_client, path):
    res = storeless_client.post(path, content="{not json", headers={"Content-Type": "application/json"})
    assert res.status_code == 401
    assert res.json() == {"error": "Access token required"}


def test_empty_bearer_counts_as_no_session(storeless_client):
    res = storeless_client.get("/job-orders", headers={"Authorization": "Bearer "})
    assert res.status_code == 401
    assert res.json() == {"error": "Access token required"}

def test_encrypted_cookie_is_accepted(client, settings, users):
    jwt = create_jwt({"sub": str(users["tech"]), "role": "technician"}, settings)
    client.cookies.set("token", encrypt_token(jwt, settings.token_secret))
    res = client.get("/users/me")
    assert res.status_code == 200
    assert res.json() == {"user": {"id": str(users["tech"]), "role": "technician"}}


def test_unreadable_cookie_is_unauthorized(client, users):
    client.cookies.set("token", "garbage")
    res = client.get("/users/me")
    assert res.status_code == 401
    assert res.json() == {"error": "Invalid or expired token"}


def test_bearer_signed_with_other_secret_is_unauthorized(client, users):
    from jose import jwt

    forged = jwt.encode({"sub": str(users["admin"]), "role": "administrator"}, "nope", algorithm="HS256")
    res = client.get("/users", headers={"Authorization": f"Bearer {forged}"})
    assert res.status_code == 401


def test_token_without_numeric_subject_is_unauthorized(client, settings, users):
    token = create_jwt({"sub": "admin", "role": "administrator"}, settings)
    res = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


def test_missing_secret_is_a_server_error():
    app = create_app(Settings(jwt_secret=None), Database("sqlite://"))
    client = TestClient(app, raise_server_exceptions=False)
    res = client.get("/users/me", headers={"Authorization": "Bearer whatever"})
    assert res.status_code == 500
    assert res.json() == {"error": "Server configuration error"}


def test_wrong_role_is_forbidden(client, headers, users):
    res = client.post(
        "/appointments",
        headers=headers["tech"],
        json={
            "assignedTechnician": users["tech"],
            "serviceAdvisor": users["advisor"],
            "plateNumber": "XYZ999",
            "timeRange": {"start": "09:00", "end": "10:00"},
        },
    )
    assert res.status_code == 403
    assert res.json() == {"error": "Insufficient permissions"}


def test_unhandled_error_hides_details(app):
    @app.get("/boom")
    def boom():
        raise RuntimeError("database password is hunter2")

    with TestClient(app, raise_server_exceptions=False) as client:
        res = client.get("/boom")
    assert res.status_code == 500
    assert res.json() == {"error": "Internal server error"}


def test_requests_are_logged_with_user(client, headers, users, caplog):
    caplog.set_level(logging.INFO, logger="workshop_board.requests")
    client.get("/users/me", headers=headers["admin"])
    messages = [r.getMessage() for r in caplog.records if r.name == "workshop_board.requests"]
    assert any(
        "GET /users/me -> 200" in m and f"user={users['admin']}" in m and "role=administrator" in m
        for m in messages
    )


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"
