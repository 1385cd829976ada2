"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in tappass/models/.
Repos convert between SQLAlchemy rows and domain dataclasses.

Enum-valued columns (role, access_level, access_reason) are plain strings.
The credential table is owned by another system; values outside the
closed sets must reach the domain layer intact and parse into the
UNRECOGNIZED arm there.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from tappass.db.engine import Base


class CredentialRow(Base):
    __tablename__ = "tappass_users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str | None] = mapped_column(
        String(128), unique=True, nullable=True
    )
    digital_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # admin|employee|student|guest
    access_level: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # full|restricted|visitor
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class AccessLogRow(Base):
    """One row per completed scan cycle.  Insert-only."""

    __tablename__ = "access_logs"
    __table_args__ = (
        Index("ix_access_logs_digital_id_created_at", "digital_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    digital_id: Mapped[str] = mapped_column(String(128), nullable=False)
    reader_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    reader_id: Mapped[str] = mapped_column(String(128), nullable=False)
    access_granted: Mapped[bool] = mapped_column(Boolean, nullable=False)
    access_reason: Mapped[str] = mapped_column(String(64), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    escort_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    operator_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_granted: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    original_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
