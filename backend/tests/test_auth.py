"""
Tests per l'autenticazione opzionale (JWT).
"""

import pytest

from app.core import deps
from app.core.config import Settings
from app.core.security import create_access_token, hash_password
from app.services import auth_service as auth_service_module


@pytest.fixture
def auth_enabled(monkeypatch):
    """Attiva l'autenticazione con l'operatore admin / secret."""
    enabled = Settings(
        auth_enabled=True,
        admin_username="admin",
        admin_password_hash=hash_password("secret"),
        _env_file=None,
    )
    monkeypatch.setattr(deps, "settings", enabled)
    monkeypatch.setattr(auth_service_module, "settings", enabled)
    return enabled


async def login(client, password="secret"):
    return await client.post("/api/v1/auth/login", json={"username": "admin", "password": password})


async def test_disabled_by_default(client):
    response = await client.get("/api/v1/clients/")
    assert response.status_code == 200


async def test_health_is_public(client, auth_enabled):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_missing_token_rejected(client, auth_enabled):
    response = await client.get("/api/v1/clients/")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "UNAUTHENTICATED"


async def test_login_and_access(client, auth_enabled):
    response = await login(client)
    assert response.status_code == 200, response.text
    tokens = response.json()
    assert tokens["token_type"] == "bearer"

    response = await client.get(
        "/api/v1/clients/",
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    assert response.status_code == 200


async def test_wrong_password(client, auth_enabled):
    response = await login(client, password="wrong")

    assert response.status_code == 401
    assert response.json()["message"] == "Identifiants invalides"


async def test_refresh_token_is_not_an_access_token(client, auth_enabled):
    tokens = (await login(client)).json()

    response = await client.get(
        "/api/v1/produits/",
        headers={"Authorization": f"Bearer {tokens['refresh_token']}"},
    )

    assert response.status_code == 401


async def test_refresh(client, auth_enabled):
    tokens = (await login(client)).json()

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200, response.text
    assert response.json()["access_token"]

    # Un access token non rinnova
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert response.status_code == 401


async def test_token_for_unknown_user(client, auth_enabled):
    token = create_access_token("intrus")

    response = await client.get("/api/v1/devis/", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


async def test_garbage_token(client, auth_enabled):
    response = await client.get("/api/v1/factures/", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
