from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ReasonCode(str, Enum):
    INACTIVE_CREDENTIAL = "inactive_credential"
    INVALID_ROLE = "invalid_role"
    FULL_ACCESS_GRANTED = "full_access_granted"
    RESTRICTED_ACCESS_GRANTED = "restricted_access_granted"
    OUTSIDE_BUSINESS_HOURS = "outside_business_hours"
    VISITOR_ESCORT_REQUIRED = "visitor_escort_required"
    OUTSIDE_VISITING_HOURS = "outside_visiting_hours"
    INVALID_ACCESS_LEVEL = "invalid_access_level"
    OPERATOR_OVERRIDE = "operator_override"


REASON_MESSAGES: dict[ReasonCode, str] = {
    ReasonCode.INACTIVE_CREDENTIAL: "User account is inactive",
    ReasonCode.INVALID_ROLE: "Credential role is not recognized",
    ReasonCode.FULL_ACCESS_GRANTED: "Full access granted",
    ReasonCode.RESTRICTED_ACCESS_GRANTED: (
        "Restricted access granted during business hours"
    ),
    ReasonCode.OUTSIDE_BUSINESS_HOURS: "Access denied outside business hours",
    ReasonCode.VISITOR_ESCORT_REQUIRED: "Visitor access granted - escort required",
    ReasonCode.OUTSIDE_VISITING_HOURS: "Visitor access denied outside visiting hours",
    ReasonCode.INVALID_ACCESS_LEVEL: "Invalid access level",
    ReasonCode.OPERATOR_OVERRIDE: "Decision overridden by reader",
}


@dataclass(frozen=True, slots=True)
class OverrideContext:
    """The computed verdict an operator replaced, kept for the audit trail."""

    original_granted: bool
    original_reason_code: ReasonCode
    operator_reason: str


@dataclass(frozen=True, slots=True)
class Decision:
    granted: bool
    reason_code: ReasonCode
    evaluated_at: datetime
    escort_required: bool = False
    override: OverrideContext | None = None

    @property
    def message(self) -> str:
        if self.override is not None:
            return self.override.operator_reason
        return REASON_MESSAGES[self.reason_code]

    @property
    def is_override(self) -> bool:
        return self.override is not None
