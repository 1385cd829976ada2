from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from tappass.api.throttle import lookup_throttle
from tappass.main import app
from tappass.models.credential import AccessLevel, Credential, Role
from tappass.services import stores, token_service
from tappass.services.readers import reader_registry

UTC = ZoneInfo("UTC")


@pytest.fixture(autouse=True)
def reset_stores() -> None:
    """Clear in-memory credentials and audit records between tests."""
    if hasattr(stores.credential_repo, "clear"):
        stores.credential_repo.clear()  # type: ignore[union-attr]
    if hasattr(stores.access_log_repo, "clear"):
        stores.access_log_repo.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_readers() -> None:
    reader_registry.clear()


@pytest.fixture(autouse=True)
def reset_lookup_throttle() -> None:
    """Clear miss counters so throttling doesn't bleed between tests."""
    if hasattr(lookup_throttle, "_windows"):
        lookup_throttle._windows.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-operator",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def reader_token() -> str:
    return mint_token(username="op-1", roles=["reader"])


@pytest.fixture
def admin_token() -> str:
    return mint_token(username="test-admin", roles=["admin"])


# ---------------------------------------------------------------------------
# Credential helpers
# ---------------------------------------------------------------------------


def make_credential(
    digital_id: str = "DID-001",
    *,
    role: Role = Role.EMPLOYEE,
    access_level: AccessLevel = AccessLevel.FULL,
    is_active: bool = True,
    full_name: str = "Ada Lovelace",
    user_id: str | None = None,
) -> Credential:
    return Credential(
        digital_id=digital_id,
        full_name=full_name,
        role=role,
        access_level=access_level,
        is_active=is_active,
        department="Engineering",
        user_id=user_id,
    )


def seed_credential(credential: Credential) -> Credential:
    """Add a credential to the in-memory store used by the app."""
    stores.credential_repo.add(credential)  # type: ignore[union-attr]
    return credential


def at(hour: int, minute: int = 0) -> datetime:
    """A fixed UTC instant on 2026-03-02 at the given wall-clock time."""
    return datetime(2026, 3, 2, hour, minute, tzinfo=UTC)
