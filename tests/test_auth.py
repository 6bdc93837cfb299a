import pytest
from fastapi.testclient import TestClient
from jose import jwt

from conftest import TestingSessionLocal
from shopsphere.main import app as fastapi_app


@pytest.fixture
def raw_client(monkeypatch):
    monkeypatch.setattr("shopsphere.database.SessionLocal", TestingSessionLocal)
    fastapi_app.dependency_overrides.clear()
    with TestClient(fastapi_app) as c:
        yield c


def token(secret="test-jwt-secret", **claims):
    claims.setdefault("sub", "user-1")
    claims.setdefault("email", "buyer@example.com")
    return jwt.encode(claims, secret, algorithm="HS256")


def test_valid_token_identifies_user(raw_client):
    response = raw_client.get("/orders", headers={"Authorization": f"Bearer {token()}"})

    assert response.status_code == 200
    assert response.json()["data"] == []


@pytest.mark.parametrize("header", [
    f"Basic {token()}",
    "Bearer",
    "Bearer not-a-jwt",
    f"Bearer {token(secret='wrong-secret')}",
    f"Bearer {token(email=None)}",
])
def test_bad_credentials(raw_client, header):
    response = raw_client.get("/orders", headers={"Authorization": header})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or missing token"


def test_missing_header(raw_client):
    assert raw_client.get("/orders").status_code == 422


def test_admin_role_from_token(raw_client):
    user = {"Authorization": f"Bearer {token()}"}
    admin = {"Authorization": f"Bearer {token(sub='admin-1', role='admin')}"}

    assert raw_client.put("/orders/x/status", headers=user, json={}).status_code == 403
    assert raw_client.put("/orders/x/status", headers=admin, json={}).status_code == 404


def test_webhook_needs_no_token(raw_client):
    response = raw_client.post("/payments/webhook", content=b"{}", headers={"x-paystack-signature": "bad"})

    assert response.status_code == 400
