from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from tappass.models.credential import Credential


class CredentialRepo(Protocol):
    """Read-mostly credential store.

    Lookups return None for "not found"; any raised exception is a
    transient store failure.
    """

    async def find_by_digital_id(self, digital_id: str) -> Credential | None: ...
    async def find_by_user_id(self, user_id: str) -> Credential | None: ...


class InMemoryCredentialRepo:
    def __init__(self) -> None:
        self._by_digital_id: dict[str, Credential] = {}

    async def find_by_digital_id(self, digital_id: str) -> Credential | None:
        return self._by_digital_id.get(digital_id)

    async def find_by_user_id(self, user_id: str) -> Credential | None:
        for credential in self._by_digital_id.values():
            if credential.user_id == user_id:
                return credential
        return None

    def add(self, credential: Credential) -> None:
        if credential.digital_id in self._by_digital_id:
            raise ValueError("digital_id already exists")
        self._by_digital_id[credential.digital_id] = credential

    def set_active(self, digital_id: str, is_active: bool) -> None:
        c = self._by_digital_id.get(digital_id)
        if c is None:
            raise KeyError("credential not found")
        self._by_digital_id[digital_id] = replace(c, is_active=is_active)

    def clear(self) -> None:
        self._by_digital_id.clear()
