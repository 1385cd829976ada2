"""Self-service lookup of the caller's own digital ID.

  GET /v1/credentials/me  -> the credential bound to the token's subject

This is what a badge holder's phone shows (the digital ID to present at
a reader).  It never reveals anyone else's credential.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from tappass.api.dependencies import require_user
from tappass.models.principal import Principal
from tappass.services import stores

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/credentials", tags=["credentials"])


class MyCredentialOut(BaseModel):
    digital_id: str
    full_name: str
    role: str
    access_level: str
    is_active: bool
    department: str | None = None
    phone: str | None = None


@router.get("/me", response_model=MyCredentialOut)
async def my_credential(
    principal: Annotated[Principal, Depends(require_user)],
) -> MyCredentialOut:
    try:
        credential = await stores.credential_repo.find_by_user_id(principal.user_id)
    except Exception:
        logger.exception(
            "Credential store failed", extra={"user_id": principal.user_id}
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Credential store unavailable",
        ) from None
    if credential is None:
        raise HTTPException(status_code=404, detail="No digital ID for this user")
    return MyCredentialOut(
        digital_id=credential.digital_id,
        full_name=credential.full_name,
        role=credential.role.value,
        access_level=credential.access_level.value,
        is_active=credential.is_active,
        department=credential.department,
        phone=credential.phone,
    )
