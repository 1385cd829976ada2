"""Reader session endpoints: open a reader, scan, finalize, cancel.

One scan cycle per reader:

  POST   /v1/readers                                  open / reconfigure
  POST   /v1/readers/{reader_id}/scans                lookup + evaluate
  POST   /v1/readers/{reader_id}/scans/current/accept     record as computed
  POST   /v1/readers/{reader_id}/scans/current/override   record forced outcome
  DELETE /v1/readers/{reader_id}/scans/current        cancel before a decision
  DELETE /v1/readers/{reader_id}                      close

The calling operator's user_id (from the bearer token) is the operator
on every audit record the reader produces.  Only the operator who opened
a reader can drive it; admins can look at any reader.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from tappass.api.dependencies import require_any_role
from tappass.api.throttle import charge_miss, ensure_not_throttled
from tappass.models.credential import Credential
from tappass.models.decision import Decision
from tappass.models.principal import ADMIN_ROLE, READER_ROLE, Principal
from tappass.services.access_session import (
    AccessSessionController,
    ScanError,
    ScanResult,
    ScanState,
)
from tappass.services.errors import (
    BusyError,
    InvalidIdentifierError,
    InvalidStateError,
    OverrideNotAllowedError,
    ReaderHeldError,
)
from tappass.services.readers import reader_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/readers", tags=["readers"])

_require_operator = require_any_role({READER_ROLE, ADMIN_ROLE})

_LOOKUP_FAILURE_STATUS = {
    ScanError.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ScanError.LOOKUP_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ScanError.LOOKUP_ERROR: status.HTTP_502_BAD_GATEWAY,
}


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class ReaderIn(BaseModel):
    reader_id: str = Field(min_length=1, max_length=64)
    location: str | None = Field(default=None, max_length=255)


class ScanIn(BaseModel):
    digital_id: str = Field(max_length=128)


class AcceptIn(BaseModel):
    note: str | None = Field(default=None, max_length=500)


class OverrideIn(BaseModel):
    granted: bool
    reason: str = Field(default="", max_length=500)


class CredentialOut(BaseModel):
    digital_id: str
    full_name: str
    role: str
    access_level: str
    is_active: bool
    department: str | None = None

    @staticmethod
    def from_credential(c: Credential) -> CredentialOut:
        return CredentialOut(
            digital_id=c.digital_id,
            full_name=c.full_name,
            role=c.role.value,
            access_level=c.access_level.value,
            is_active=c.is_active,
            department=c.department,
        )


class DecisionOut(BaseModel):
    granted: bool
    reason_code: str
    message: str
    escort_required: bool
    evaluated_at: datetime

    @staticmethod
    def from_decision(d: Decision) -> DecisionOut:
        return DecisionOut(
            granted=d.granted,
            reason_code=d.reason_code.value,
            message=d.message,
            escort_required=d.escort_required,
            evaluated_at=d.evaluated_at,
        )


class ScanOut(BaseModel):
    """An evaluated scan awaiting accept/override."""

    state: str
    digital_id: str
    credential: CredentialOut
    decision: DecisionOut

    @staticmethod
    def from_result(result: ScanResult) -> ScanOut:
        if result.credential is None or result.decision is None:
            raise ValueError(f"scan result is {result.state.value}, not evaluated")
        return ScanOut(
            state=result.state.value,
            digital_id=result.digital_id,
            credential=CredentialOut.from_credential(result.credential),
            decision=DecisionOut.from_decision(result.decision),
        )


class ResultOut(BaseModel):
    """What the reader shows once a cycle is finished."""

    state: str
    digital_id: str
    granted: bool
    reason_code: str | None
    message: str
    error: str | None
    escort_required: bool = False
    attempt_id: str | None = None

    @staticmethod
    def from_result(result: ScanResult) -> ResultOut:
        return ResultOut(
            digital_id=result.digital_id,
            escort_required=bool(
                result.decision and result.decision.escort_required
            ),
            attempt_id=str(result.attempt.id) if result.attempt else None,
            **result.presented(),
        )


class ReaderOut(BaseModel):
    reader_id: str
    operator_id: str
    location: str
    state: str
    pending: ScanOut | None = None
    last_result: ResultOut | None = None

    @staticmethod
    def from_controller(controller: AccessSessionController) -> ReaderOut:
        pending = controller.pending
        last = controller.last_result
        return ReaderOut(
            reader_id=controller.context.reader_id,
            operator_id=controller.context.operator_id,
            location=controller.context.location,
            state=controller.state.value,
            pending=ScanOut.from_result(pending) if pending else None,
            last_result=ResultOut.from_result(last) if last else None,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_reader(reader_id: str) -> AccessSessionController:
    controller = reader_registry.get(reader_id.strip())
    if controller is None:
        raise HTTPException(status_code=404, detail="Reader not open")
    return controller


def _owned_reader(reader_id: str, principal: Principal) -> AccessSessionController:
    controller = _get_reader(reader_id)
    if controller.context.operator_id != principal.user_id:
        logger.warning(
            "Operator %s tried to drive a reader held by %s",
            principal.user_id,
            controller.context.operator_id,
            extra={"reader_id": controller.context.reader_id},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Reader is held by another operator",
        )
    return controller


def _conflict(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def _finalized(result: ScanResult, response: Response) -> ResultOut:
    if result.state is ScanState.LOG_FAILED:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ResultOut.from_result(result)


# ---------------------------------------------------------------------------
# Reader lifecycle
# ---------------------------------------------------------------------------


@router.post("", response_model=ReaderOut, status_code=status.HTTP_201_CREATED)
async def open_reader(
    body: ReaderIn,
    principal: Annotated[Principal, Depends(_require_operator)],
) -> ReaderOut:
    try:
        controller = reader_registry.open(
            reader_id=body.reader_id,
            operator_id=principal.user_id,
            location=body.location,
        )
    except ReaderHeldError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from None
    except BusyError as e:
        raise _conflict(e) from None
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None
    return ReaderOut.from_controller(controller)


@router.get("/{reader_id}", response_model=ReaderOut)
async def get_reader(
    reader_id: str,
    principal: Annotated[Principal, Depends(_require_operator)],
) -> ReaderOut:
    if principal.is_admin():
        return ReaderOut.from_controller(_get_reader(reader_id))
    return ReaderOut.from_controller(_owned_reader(reader_id, principal))


@router.delete("/{reader_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_reader(
    reader_id: str,
    principal: Annotated[Principal, Depends(_require_operator)],
) -> Response:
    controller = _owned_reader(reader_id, principal)
    try:
        reader_registry.close(controller.context.reader_id)
    except BusyError as e:
        raise _conflict(e) from None
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Scan cycle
# ---------------------------------------------------------------------------


@router.post("/{reader_id}/scans", response_model=ScanOut)
async def scan(
    reader_id: str,
    body: ScanIn,
    principal: Annotated[Principal, Depends(_require_operator)],
) -> ScanOut:
    controller = _owned_reader(reader_id, principal)
    key = controller.context.reader_id
    await ensure_not_throttled(key)

    try:
        result = await controller.scan(body.digital_id)
    except InvalidIdentifierError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None
    except BusyError as e:
        raise _conflict(e) from None

    if result.state is ScanState.LOOKUP_FAILED:
        if result.error is ScanError.NOT_FOUND:
            await charge_miss(key)
        raise HTTPException(
            status_code=_LOOKUP_FAILURE_STATUS.get(
                result.error, status.HTTP_502_BAD_GATEWAY
            ),
            detail=ResultOut.from_result(result).model_dump(),
        )
    if result.error is ScanError.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=ResultOut.from_result(result).model_dump(),
        )
    return ScanOut.from_result(result)


@router.post("/{reader_id}/scans/current/accept", response_model=ResultOut)
async def accept_scan(
    reader_id: str,
    principal: Annotated[Principal, Depends(_require_operator)],
    response: Response,
    body: AcceptIn | None = None,
) -> ResultOut:
    controller = _owned_reader(reader_id, principal)
    try:
        result = await controller.accept(note=body.note if body else None)
    except (InvalidStateError, BusyError) as e:
        raise _conflict(e) from None
    return _finalized(result, response)


@router.post("/{reader_id}/scans/current/override", response_model=ResultOut)
async def override_scan(
    reader_id: str,
    body: OverrideIn,
    principal: Annotated[Principal, Depends(_require_operator)],
    response: Response,
) -> ResultOut:
    controller = _owned_reader(reader_id, principal)
    try:
        result = await controller.override(granted=body.granted, reason=body.reason)
    except OverrideNotAllowedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from None
    except (InvalidStateError, BusyError) as e:
        raise _conflict(e) from None
    return _finalized(result, response)


@router.delete("/{reader_id}/scans/current", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_scan(
    reader_id: str,
    principal: Annotated[Principal, Depends(_require_operator)],
) -> Response:
    controller = _owned_reader(reader_id, principal)
    try:
        controller.cancel()
    except InvalidStateError as e:
        raise _conflict(e) from None
    return Response(status_code=status.HTTP_204_NO_CONTENT)
