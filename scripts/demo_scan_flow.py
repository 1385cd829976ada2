"""Demo: drive a reader through a few scan cycles using FastAPI TestClient.

Uses the in-memory stores, so it runs without PostgreSQL or Redis.

Run with:
    python scripts/demo_scan_flow.py
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from tappass.main import app
from tappass.models.credential import AccessLevel, Credential, Role
from tappass.services import stores, token_service

READER_ID = "lobby-east"


def main() -> None:
    client = TestClient(app)
    operator = token_service.create_access_token(sub="demo-operator", roles=["reader"])
    admin = token_service.create_access_token(sub="demo-admin", roles=["admin"])
    headers = {"Authorization": f"Bearer {operator}"}

    # ── Seed data ───────────────────────────────────────────────────
    for credential in (
        Credential("TP-1001", "Ada Lovelace", Role.EMPLOYEE, AccessLevel.FULL),
        Credential("TP-2002", "Alan Turing", Role.STUDENT, AccessLevel.RESTRICTED),
        Credential("TP-3003", "Grace Hopper", Role.EMPLOYEE, AccessLevel.FULL, False),
    ):
        if hasattr(stores.credential_repo, "add"):
            stores.credential_repo.add(credential)

    r = client.post(
        "/v1/readers",
        json={"reader_id": READER_ID, "location": "East lobby"},
        headers=headers,
    )
    print(f"1. open reader           → {r.status_code}  state={r.json()['state']}")

    # ── Accept computed decisions ───────────────────────────────────
    for step, digital_id in enumerate(("TP-1001", "TP-2002", "TP-3003"), start=2):
        r = client.post(
            f"/v1/readers/{READER_ID}/scans",
            json={"digital_id": digital_id},
            headers=headers,
        )
        computed = r.json()["decision"]
        r = client.post(
            f"/v1/readers/{READER_ID}/scans/current/accept", headers=headers
        )
        result = r.json()
        print(
            f"{step}. scan {digital_id}         → computed={computed['reason_code']}"
            f"  recorded granted={result['granted']}"
        )

    # ── Unknown identifier ──────────────────────────────────────────
    r = client.post(
        f"/v1/readers/{READER_ID}/scans",
        json={"digital_id": "TP-9999"},
        headers=headers,
    )
    print(f"5. scan TP-9999          → {r.status_code}  {r.json()['detail']['message']}")

    # ── Operator override ───────────────────────────────────────────
    client.post(
        f"/v1/readers/{READER_ID}/scans",
        json={"digital_id": "TP-1001"},
        headers=headers,
    )
    r = client.post(
        f"/v1/readers/{READER_ID}/scans/current/override",
        json={"granted": False, "reason": "Photo does not match"},
        headers=headers,
    )
    print(f"6. override deny         → {r.status_code}  {r.json()['message']}")

    # ── Audit trail ─────────────────────────────────────────────────
    r = client.get("/v1/access-logs", headers={"Authorization": f"Bearer {admin}"})
    print(f"7. access logs           → {len(r.json())} records")
    for log in r.json():
        print(
            f"     {log['digital_id']}  granted={log['granted']!s:5}"
            f"  {log['reason_code']}"
        )


if __name__ == "__main__":
    main()
