"""Audit trail read endpoint (admin only).

  GET /v1/access-logs?digital_id=&limit=

Newest first.  Records are read-only; nothing in the API updates or
deletes them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from tappass.api.dependencies import require_role
from tappass.models.access_attempt import AccessAttempt
from tappass.models.principal import ADMIN_ROLE, Principal
from tappass.services import stores

router = APIRouter(prefix="/v1/access-logs", tags=["access-logs"])


class AccessLogOut(BaseModel):
    id: str
    digital_id: str
    reader_operator_id: str
    reader_id: str
    granted: bool
    reason_code: str
    location: str
    timestamp: datetime
    escort_required: bool
    operator_note: str | None = None
    original_granted: bool | None = None
    original_reason_code: str | None = None

    @staticmethod
    def from_attempt(a: AccessAttempt) -> AccessLogOut:
        return AccessLogOut(
            id=str(a.id),
            digital_id=a.digital_id,
            reader_operator_id=a.reader_operator_id,
            reader_id=a.reader_id,
            granted=a.granted,
            reason_code=a.reason_code.value,
            location=a.location,
            timestamp=a.timestamp,
            escort_required=a.escort_required,
            operator_note=a.operator_note,
            original_granted=a.original_granted,
            original_reason_code=(
                a.original_reason_code.value if a.original_reason_code else None
            ),
        )


@router.get("", response_model=list[AccessLogOut])
async def list_access_logs(
    _admin: Annotated[Principal, Depends(require_role(ADMIN_ROLE))],
    digital_id: str | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[AccessLogOut]:
    attempts = await stores.access_log_repo.list_recent(
        limit=limit, digital_id=digital_id or None
    )
    return [AccessLogOut.from_attempt(a) for a in attempts]
