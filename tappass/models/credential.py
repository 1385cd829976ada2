from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Badge holder role.

    UNRECOGNIZED is the explicit arm for stored values outside the closed
    set.  It is never chosen as a default for missing data; the policy
    evaluator denies it.
    """

    ADMIN = "admin"
    EMPLOYEE = "employee"
    STUDENT = "student"
    GUEST = "guest"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: str | None) -> Role:
        try:
            role = cls((raw or "").strip().lower())
        except ValueError:
            return cls.UNRECOGNIZED
        return role


class AccessLevel(str, Enum):
    """Policy tier governing the time-window rules; independent of Role."""

    FULL = "full"
    RESTRICTED = "restricted"
    VISITOR = "visitor"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: str | None) -> AccessLevel:
        try:
            level = cls((raw or "").strip().lower())
        except ValueError:
            return cls.UNRECOGNIZED
        return level


@dataclass(frozen=True, slots=True)
class Credential:
    """A badge record as returned by the credential store."""

    digital_id: str
    full_name: str
    role: Role
    access_level: AccessLevel
    is_active: bool = True
    department: str | None = None
    phone: str | None = None
    user_id: str | None = None  # owner of the badge, if linked to an account

    def __post_init__(self) -> None:
        if not self.digital_id.strip():
            raise ValueError("digital_id must be non-empty")
        if not self.full_name.strip():
            raise ValueError("full_name must be non-empty")

    @property
    def has_integrity_issue(self) -> bool:
        return (
            self.role is Role.UNRECOGNIZED
            or self.access_level is AccessLevel.UNRECOGNIZED
        )

    @staticmethod
    def from_record(
        *,
        digital_id: str,
        full_name: str,
        role: str | None,
        access_level: str | None,
        is_active: bool,
        department: str | None = None,
        phone: str | None = None,
        user_id: str | None = None,
    ) -> Credential:
        # Stores hand back loosely-typed strings; parse them here, once.
        return Credential(
            digital_id=digital_id,
            full_name=full_name,
            role=Role.parse(role),
            access_level=AccessLevel.parse(access_level),
            is_active=is_active,
            department=department or None,
            phone=phone or None,
            user_id=user_id,
        )
