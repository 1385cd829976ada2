from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

from tappass.models.decision import Decision, ReasonCode

UNKNOWN_LOCATION = "Unknown location"


@dataclass(frozen=True, slots=True)
class AccessAttempt:
    """Audit record of one completed scan cycle.  Never updated once written.

    ``timestamp`` is the decision's ``evaluated_at``, not the write time, so
    the record shows exactly the instant the time-window rules were checked.
    """

    id: UUID
    digital_id: str
    reader_operator_id: str
    reader_id: str
    granted: bool
    reason_code: ReasonCode
    location: str
    timestamp: datetime
    escort_required: bool = False
    operator_note: str | None = None
    original_granted: bool | None = None
    original_reason_code: ReasonCode | None = None

    @staticmethod
    def new(
        *,
        decision: Decision,
        digital_id: str,
        reader_operator_id: str,
        reader_id: str,
        location: str | None,
        note: str | None = None,
    ) -> AccessAttempt:
        override = decision.override
        if override is not None:
            note = override.operator_reason
        return AccessAttempt(
            id=uuid4(),
            digital_id=digital_id,
            reader_operator_id=reader_operator_id,
            reader_id=reader_id,
            granted=decision.granted,
            reason_code=decision.reason_code,
            location=normalize_location(location),
            timestamp=decision.evaluated_at,
            escort_required=decision.escort_required,
            operator_note=(note or "").strip() or None,
            original_granted=override.original_granted if override else None,
            original_reason_code=(
                override.original_reason_code if override else None
            ),
        )


def normalize_location(location: str | None) -> str:
    return (location or "").strip() or UNKNOWN_LOCATION
