"""PostgreSQL implementation of AccessLogRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tappass.db.tables import AccessLogRow
from tappass.models.access_attempt import AccessAttempt
from tappass.models.decision import ReasonCode


class PgAccessLogRepo:
    """Satisfies the AccessLogRepo Protocol using PostgreSQL via SQLAlchemy.

    Every append runs in its own transaction, committed before returning,
    so a successful call means the record is durable.  Inserts use
    ON CONFLICT DO NOTHING on the primary key, which makes a retry of a
    write whose acknowledgement was lost harmless.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, attempt: AccessAttempt) -> None:
        stmt = (
            insert(AccessLogRow)
            .values(
                id=attempt.id,
                digital_id=attempt.digital_id,
                reader_user_id=attempt.reader_operator_id,
                reader_id=attempt.reader_id,
                access_granted=attempt.granted,
                access_reason=attempt.reason_code.value,
                location=attempt.location,
                escort_required=attempt.escort_required,
                operator_note=attempt.operator_note,
                original_granted=attempt.original_granted,
                original_reason=(
                    attempt.original_reason_code.value
                    if attempt.original_reason_code is not None
                    else None
                ),
                created_at=attempt.timestamp,
            )
            .on_conflict_do_nothing(index_elements=[AccessLogRow.id])
        )
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(stmt)

    async def list_recent(
        self,
        *,
        limit: int = 50,
        digital_id: str | None = None,
    ) -> list[AccessAttempt]:
        stmt = select(AccessLogRow).order_by(AccessLogRow.created_at.desc())
        if digital_id is not None:
            stmt = stmt.where(AccessLogRow.digital_id == digital_id)
        stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]


def _row_to_attempt(row: AccessLogRow) -> AccessAttempt:
    return AccessAttempt(
        id=row.id,
        digital_id=row.digital_id,
        reader_operator_id=row.reader_user_id,
        reader_id=row.reader_id,
        granted=row.access_granted,
        reason_code=ReasonCode(row.access_reason),
        location=row.location,
        timestamp=row.created_at,
        escort_required=row.escort_required,
        operator_note=row.operator_note,
        original_granted=row.original_granted,
        original_reason_code=(
            ReasonCode(row.original_reason) if row.original_reason else None
        ),
    )
