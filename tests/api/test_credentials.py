from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import auth, make_credential, mint_token, seed_credential


def test_me_returns_own_credential(client: TestClient) -> None:
    seed_credential(make_credential("DID-7", user_id="u-7"))
    token = mint_token(username="u-7", roles=["student"])
    resp = client.get("/v1/credentials/me", headers=auth(token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["digital_id"] == "DID-7"
    assert body["role"] == "employee"
    assert body["access_level"] == "full"


def test_me_without_linked_credential_is_404(client: TestClient) -> None:
    token = mint_token(username="nobody")
    assert client.get("/v1/credentials/me", headers=auth(token)).status_code == 404


def test_me_requires_token(client: TestClient) -> None:
    assert client.get("/v1/credentials/me").status_code == 401


def test_expired_token_rejected(client: TestClient) -> None:
    from tappass.services import token_service

    expired = token_service.create_access_token(sub="u-7", ttl_minutes=-1)
    resp = client.get("/v1/credentials/me", headers=auth(expired))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_garbage_token_rejected(client: TestClient) -> None:
    resp = client.get("/v1/credentials/me", headers=auth("not-a-jwt"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"
