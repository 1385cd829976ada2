"""PostgreSQL implementation of CredentialRepo."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tappass.db.tables import CredentialRow
from tappass.models.credential import Credential

logger = logging.getLogger(__name__)


class PgCredentialRepo:
    """Satisfies the CredentialRepo Protocol using PostgreSQL via SQLAlchemy.

    Each lookup opens its own short read session; reader sessions outlive
    any single HTTP request, so the repo can't borrow a request-scoped one.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_digital_id(self, digital_id: str) -> Credential | None:
        stmt = select(CredentialRow).where(CredentialRow.digital_id == digital_id)
        return await self._fetch_one(stmt)

    async def find_by_user_id(self, user_id: str) -> Credential | None:
        stmt = select(CredentialRow).where(CredentialRow.user_id == user_id)
        return await self._fetch_one(stmt)

    async def _fetch_one(self, stmt) -> Credential | None:
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_credential(row)


def _row_to_credential(row: CredentialRow) -> Credential:
    credential = Credential.from_record(
        digital_id=row.digital_id,
        full_name=row.full_name,
        role=row.role,
        access_level=row.access_level,
        is_active=row.is_active,
        department=row.department,
        phone=row.phone,
        user_id=row.user_id,
    )
    if credential.has_integrity_issue:
        logger.warning(
            "Credential has unrecognized enum value role=%r access_level=%r",
            row.role,
            row.access_level,
            extra={"digital_id": row.digital_id},
        )
    return credential
