from __future__ import annotations

from typing import Protocol
from uuid import UUID

from tappass.models.access_attempt import AccessAttempt


class AccessLogRepo(Protocol):
    """Append-only audit sink.

    ``append`` is atomic per call and idempotent on ``attempt.id``: a
    retried append of an already-stored attempt is a no-op, never a
    second record.
    """

    async def append(self, attempt: AccessAttempt) -> None: ...

    async def list_recent(
        self,
        *,
        limit: int = 50,
        digital_id: str | None = None,
    ) -> list[AccessAttempt]: ...


class InMemoryAccessLogRepo:
    def __init__(self) -> None:
        self._records: dict[UUID, AccessAttempt] = {}  # insertion ordered

    async def append(self, attempt: AccessAttempt) -> None:
        # No await between check and insert, so concurrent appends can't interleave.
        self._records.setdefault(attempt.id, attempt)

    async def list_recent(
        self,
        *,
        limit: int = 50,
        digital_id: str | None = None,
    ) -> list[AccessAttempt]:
        records = [
            a
            for a in reversed(self._records.values())
            if digital_id is None or a.digital_id == digital_id
        ]
        return records[:limit]

    def __len__(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self._records.clear()
