"""HTTP tests for the reader session endpoints.

Credentials here use full access (or are inactive) so outcomes don't
depend on the hour the suite runs.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from tappass.models.access_attempt import AccessAttempt
from tappass.models.credential import Credential, Role
from tappass.repos.access_log_repo import InMemoryAccessLogRepo
from tappass.repos.credential_repo import InMemoryCredentialRepo
from tappass.services import stores
from tappass.services.access_session import AccessSessionController, ReaderContext
from tappass.services.audit_logger import AuditLogger
from tappass.services.readers import reader_registry
from tests.conftest import auth, make_credential, mint_token, seed_credential


def _open(client: TestClient, token: str, reader_id: str = "lobby") -> None:
    resp = client.post(
        "/v1/readers",
        json={"reader_id": reader_id, "location": "Main lobby"},
        headers=auth(token),
    )
    assert resp.status_code == 201


def _scan(client: TestClient, token: str, digital_id: str, reader_id: str = "lobby"):
    return client.post(
        f"/v1/readers/{reader_id}/scans",
        json={"digital_id": digital_id},
        headers=auth(token),
    )


# ---- auth ----


def test_open_reader_requires_token(client: TestClient) -> None:
    resp = client.post("/v1/readers", json={"reader_id": "lobby"})
    assert resp.status_code == 401


def test_open_reader_requires_operator_role(client: TestClient) -> None:
    token = mint_token(username="badge-holder", roles=["student"])
    resp = client.post("/v1/readers", json={"reader_id": "lobby"}, headers=auth(token))
    assert resp.status_code == 403


def test_open_reader(client: TestClient, reader_token: str) -> None:
    resp = client.post(
        "/v1/readers",
        json={"reader_id": "lobby", "location": "Main lobby"},
        headers=auth(reader_token),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["reader_id"] == "lobby"
    assert body["operator_id"] == "op-1"
    assert body["location"] == "Main lobby"
    assert body["state"] == "idle"


def test_open_reader_without_location(client: TestClient, reader_token: str) -> None:
    resp = client.post(
        "/v1/readers", json={"reader_id": "dock"}, headers=auth(reader_token)
    )
    assert resp.json()["location"] == "Unknown location"


# ---- full cycle ----


def test_scan_then_accept_records_grant(client: TestClient, reader_token: str) -> None:
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)

    scan = _scan(client, reader_token, "DID-1")
    assert scan.status_code == 200
    body = scan.json()
    assert body["state"] == "evaluated"
    assert body["credential"]["full_name"] == "Ada Lovelace"
    assert body["decision"]["granted"] is True
    assert body["decision"]["reason_code"] == "full_access_granted"

    resp = client.post(
        "/v1/readers/lobby/scans/current/accept", headers=auth(reader_token)
    )
    assert resp.status_code == 200
    result = resp.json()
    assert result["state"] == "logged"
    assert result["granted"] is True
    assert result["message"] == "Full access granted"
    assert result["attempt_id"] is not None
    assert len(stores.access_log_repo) == 1  # type: ignore[arg-type]


def test_inactive_credential_denied(client: TestClient, reader_token: str) -> None:
    seed_credential(make_credential("DID-1", is_active=False))
    _open(client, reader_token)
    _scan(client, reader_token, "DID-1")
    resp = client.post(
        "/v1/readers/lobby/scans/current/accept",
        json={"note": "Sent to front desk"},
        headers=auth(reader_token),
    )
    assert resp.json()["granted"] is False
    assert resp.json()["reason_code"] == "inactive_credential"


def test_unrecognized_role_denied(client: TestClient, reader_token: str) -> None:
    seed_credential(make_credential("DID-1", role=Role.UNRECOGNIZED))
    _open(client, reader_token)
    body = _scan(client, reader_token, "DID-1").json()
    assert body["decision"]["granted"] is False
    assert body["decision"]["reason_code"] == "invalid_role"


def test_override_deny(client: TestClient, reader_token: str) -> None:
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)
    _scan(client, reader_token, "DID-1")
    resp = client.post(
        "/v1/readers/lobby/scans/current/override",
        json={"granted": False, "reason": "Photo mismatch"},
        headers=auth(reader_token),
    )
    assert resp.status_code == 200
    result = resp.json()
    assert result["granted"] is False
    assert result["reason_code"] == "operator_override"
    assert result["message"] == "Photo mismatch"


def test_override_grant_of_inactive_is_forbidden(
    client: TestClient, reader_token: str
) -> None:
    seed_credential(make_credential("DID-1", is_active=False))
    _open(client, reader_token)
    _scan(client, reader_token, "DID-1")
    resp = client.post(
        "/v1/readers/lobby/scans/current/override",
        json={"granted": True, "reason": "I know them"},
        headers=auth(reader_token),
    )
    assert resp.status_code == 403
    reader = client.get("/v1/readers/lobby", headers=auth(reader_token)).json()
    assert reader["state"] == "evaluated"


# ---- failures ----


def test_unknown_identifier_is_404_without_record(
    client: TestClient, reader_token: str
) -> None:
    _open(client, reader_token)
    resp = _scan(client, reader_token, "NOPE")
    assert resp.status_code == 404
    assert resp.json()["detail"]["state"] == "lookup_failed"
    assert resp.json()["detail"]["error"] == "not_found"
    assert len(stores.access_log_repo) == 0  # type: ignore[arg-type]


def test_blank_identifier_is_422(client: TestClient, reader_token: str) -> None:
    _open(client, reader_token)
    assert _scan(client, reader_token, "   ").status_code == 422


def test_second_scan_while_evaluated_is_409(
    client: TestClient, reader_token: str
) -> None:
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)
    _scan(client, reader_token, "DID-1")
    assert _scan(client, reader_token, "DID-1").status_code == 409


def test_accept_without_scan_is_409(client: TestClient, reader_token: str) -> None:
    _open(client, reader_token)
    resp = client.post(
        "/v1/readers/lobby/scans/current/accept", headers=auth(reader_token)
    )
    assert resp.status_code == 409


def test_cancel_after_evaluation_is_409(client: TestClient, reader_token: str) -> None:
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)
    _scan(client, reader_token, "DID-1")
    resp = client.delete("/v1/readers/lobby/scans/current", headers=auth(reader_token))
    assert resp.status_code == 409


def test_cancel_when_idle_is_204(client: TestClient, reader_token: str) -> None:
    _open(client, reader_token)
    resp = client.delete("/v1/readers/lobby/scans/current", headers=auth(reader_token))
    assert resp.status_code == 204


def test_scan_on_unopened_reader_is_404(client: TestClient, reader_token: str) -> None:
    resp = _scan(client, reader_token, "DID-1", reader_id="ghost")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Reader not open"


# ---- ownership ----


def test_other_operator_cannot_drive_reader(
    client: TestClient, reader_token: str
) -> None:
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)
    other = mint_token(username="op-2", roles=["reader"])
    assert _scan(client, other, "DID-1").status_code == 403


def test_other_operator_cannot_take_over_reader(
    client: TestClient, reader_token: str
) -> None:
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)
    other = mint_token(username="op-2", roles=["reader"])
    resp = client.post(
        "/v1/readers", json={"reader_id": "lobby"}, headers=auth(other)
    )
    assert resp.status_code == 403

    reader = client.get("/v1/readers/lobby", headers=auth(reader_token)).json()
    assert reader["operator_id"] == "op-1"
    assert _scan(client, reader_token, "DID-1").status_code == 200


def test_reader_can_be_reopened_by_another_operator_after_close(
    client: TestClient, reader_token: str
) -> None:
    _open(client, reader_token)
    client.delete("/v1/readers/lobby", headers=auth(reader_token))
    other = mint_token(username="op-2", roles=["reader"])
    _open(client, other)
    reader = client.get("/v1/readers/lobby", headers=auth(other)).json()
    assert reader["operator_id"] == "op-2"


def test_admin_can_view_any_reader(
    client: TestClient, reader_token: str, admin_token: str
) -> None:
    _open(client, reader_token)
    resp = client.get("/v1/readers/lobby", headers=auth(admin_token))
    assert resp.status_code == 200
    assert resp.json()["operator_id"] == "op-1"


def test_close_reader(client: TestClient, reader_token: str) -> None:
    _open(client, reader_token)
    resp = client.delete("/v1/readers/lobby", headers=auth(reader_token))
    assert resp.status_code == 204
    assert client.get("/v1/readers/lobby", headers=auth(reader_token)).status_code == 404


def test_reopen_while_evaluated_is_409(client: TestClient, reader_token: str) -> None:
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)
    _scan(client, reader_token, "DID-1")
    resp = client.post(
        "/v1/readers",
        json={"reader_id": "lobby", "location": "Side door"},
        headers=auth(reader_token),
    )
    assert resp.status_code == 409


# ---- unknown-ID throttle ----


def test_repeated_unknown_ids_get_429(client: TestClient, reader_token: str) -> None:
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)
    statuses = [_scan(client, reader_token, f"BOGUS-{n}").status_code for n in range(5)]
    assert statuses == [404] * 5

    resp = _scan(client, reader_token, "DID-1")
    assert resp.status_code == 429
    assert int(resp.headers["retry-after"]) > 0


def test_throttle_is_per_reader(client: TestClient, reader_token: str) -> None:
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token, "lobby")
    _open(client, reader_token, "dock")
    for n in range(5):
        _scan(client, reader_token, f"BOGUS-{n}", reader_id="lobby")
    assert _scan(client, reader_token, "DID-1", reader_id="dock").status_code == 200


# ---- store and audit sink outages ----


class BrokenSink(InMemoryAccessLogRepo):
    async def append(self, attempt: AccessAttempt) -> None:
        raise ConnectionError("audit store down")


class HangingSink(InMemoryAccessLogRepo):
    async def append(self, attempt: AccessAttempt) -> None:
        await asyncio.sleep(1)


class FailingStore(InMemoryCredentialRepo):
    async def find_by_digital_id(self, digital_id: str) -> Credential | None:
        raise ConnectionError("credential store down")


class SlowStore(InMemoryCredentialRepo):
    async def find_by_digital_id(self, digital_id: str) -> Credential | None:
        await asyncio.sleep(1)
        return await super().find_by_digital_id(digital_id)


def _use_credential_store(
    monkeypatch: pytest.MonkeyPatch,
    store: InMemoryCredentialRepo,
    *,
    lookup_timeout: float = 5.0,
) -> None:
    def factory(context: ReaderContext) -> AccessSessionController:
        return AccessSessionController(
            context,
            credentials=store,
            audit=stores.audit_logger,
            evaluator=stores.policy_evaluator,
            lookup_timeout_seconds=lookup_timeout,
        )

    monkeypatch.setattr(reader_registry, "_factory", factory)


def test_credential_store_error_is_502(
    client: TestClient, reader_token: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use_credential_store(monkeypatch, FailingStore())
    _open(client, reader_token)
    resp = _scan(client, reader_token, "DID-1")
    assert resp.status_code == 502
    detail = resp.json()["detail"]
    assert detail["state"] == "lookup_failed"
    assert detail["error"] == "lookup_error"
    assert detail["granted"] is False
    assert len(stores.access_log_repo) == 0  # type: ignore[arg-type]


def test_credential_lookup_timeout_is_504(
    client: TestClient, reader_token: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = SlowStore()
    store.add(make_credential("DID-1"))
    _use_credential_store(monkeypatch, store, lookup_timeout=0.05)
    _open(client, reader_token)
    resp = _scan(client, reader_token, "DID-1")
    assert resp.status_code == 504
    assert resp.json()["detail"]["error"] == "lookup_timeout"
    assert len(stores.access_log_repo) == 0  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("sink", "error"),
    [(BrokenSink(), "log_failed"), (HangingSink(), "log_timeout")],
    ids=["sink-error", "sink-timeout"],
)
def test_accept_when_audit_write_fails_is_503(
    client: TestClient,
    reader_token: str,
    monkeypatch: pytest.MonkeyPatch,
    sink: InMemoryAccessLogRepo,
    error: str,
) -> None:
    monkeypatch.setattr(
        stores, "audit_logger", AuditLogger(sink, max_retries=0, timeout_seconds=0.05)
    )
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)
    assert _scan(client, reader_token, "DID-1").json()["decision"]["granted"] is True

    resp = client.post(
        "/v1/readers/lobby/scans/current/accept", headers=auth(reader_token)
    )
    assert resp.status_code == 503
    result = resp.json()
    assert result["state"] == "log_failed"
    assert result["error"] == error
    # A computed grant that was never recorded is not a grant, and is
    # not reported as a policy denial either.
    assert result["granted"] is False
    assert result["reason_code"] == "full_access_granted"
    assert "manual follow-up" in result["message"]
    assert len(sink) == 0
    assert len(stores.access_log_repo) == 0  # type: ignore[arg-type]

    reader = client.get("/v1/readers/lobby", headers=auth(reader_token)).json()
    assert reader["state"] == "log_failed"
    assert reader["last_result"]["error"] == error


def test_override_when_audit_write_fails_is_503(
    client: TestClient, reader_token: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(stores, "audit_logger", AuditLogger(BrokenSink(), max_retries=1))
    seed_credential(make_credential("DID-1"))
    _open(client, reader_token)
    _scan(client, reader_token, "DID-1")

    resp = client.post(
        "/v1/readers/lobby/scans/current/override",
        json={"granted": False, "reason": "Photo mismatch"},
        headers=auth(reader_token),
    )
    assert resp.status_code == 503
    assert resp.json()["state"] == "log_failed"
    assert resp.json()["error"] == "log_failed"
    assert resp.json()["granted"] is False

    # The reader is free for the next tap.
    assert _scan(client, reader_token, "DID-1").status_code == 200
