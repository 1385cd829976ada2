"""Access session controller: one scan cycle at a time, per reader.

STATE MACHINE
-------------

    idle ──scan()──▶ scanning ──found──▶ resolved ──▶ evaluated
                        │                               │
                        ├─ not found / error / timeout  ├─ accept() / override()
                        ▼                               ▼
                  lookup_failed                  logged │ log_failed

  - scanning, resolved and evaluated are "in flight".  A second scan() in
    flight raises BusyError; it is rejected, not queued, so an audit
    record can never be attributed to the wrong physical tap.
  - resolved -> evaluated happens immediately: the policy evaluator is
    pure and runs on the controller's clock reading.
  - lookup_failed writes no audit record.  Every cycle that reaches
    evaluated ends in exactly one of logged (one record written) or
    log_failed (the sink refused it after the retry budget).
  - cancel() is allowed while scanning/resolved and returns to idle with
    no record.  An evaluated cycle cannot be cancelled.
  - Terminal states (logged, lookup_failed, log_failed) accept a new
    scan() directly.

The controller is built with the reader's context (reader id, operator
id, location).  It never reads session or auth state on its own.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from tappass.core.metrics import ACCESS_DECISIONS, SCAN_CYCLES
from tappass.models.access_attempt import AccessAttempt, normalize_location
from tappass.models.credential import Credential
from tappass.models.decision import Decision, ReasonCode
from tappass.repos.credential_repo import CredentialRepo
from tappass.services.audit_logger import AuditLogger
from tappass.services.errors import (
    AuditTimeoutError,
    BusyError,
    InvalidIdentifierError,
    InvalidStateError,
    OverrideNotAllowedError,
    PersistenceError,
)
from tappass.services.policy import PolicyEvaluator, apply_override, default_evaluator

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    RESOLVED = "resolved"
    EVALUATED = "evaluated"
    LOGGED = "logged"
    LOOKUP_FAILED = "lookup_failed"
    LOG_FAILED = "log_failed"


IN_FLIGHT_STATES = frozenset({ScanState.SCANNING, ScanState.RESOLVED, ScanState.EVALUATED})


class ScanError(str, Enum):
    NOT_FOUND = "not_found"
    LOOKUP_ERROR = "lookup_error"
    LOOKUP_TIMEOUT = "lookup_timeout"
    CANCELLED = "cancelled"
    LOG_FAILED = "log_failed"
    LOG_TIMEOUT = "log_timeout"


ERROR_MESSAGES: dict[ScanError, str] = {
    ScanError.NOT_FOUND: "Digital ID not found",
    ScanError.LOOKUP_ERROR: "Error looking up Digital ID",
    ScanError.LOOKUP_TIMEOUT: "Digital ID lookup timed out",
    ScanError.CANCELLED: "Scan cancelled",
    ScanError.LOG_FAILED: (
        "Access decision could not be recorded; manual follow-up required"
    ),
    ScanError.LOG_TIMEOUT: (
        "Recording the access decision timed out; manual follow-up required"
    ),
}


@dataclass(frozen=True, slots=True)
class ReaderContext:
    reader_id: str
    operator_id: str
    location: str

    @staticmethod
    def new(*, reader_id: str, operator_id: str, location: str | None) -> ReaderContext:
        if not reader_id.strip():
            raise ValueError("reader_id must be non-empty")
        if not operator_id.strip():
            raise ValueError("operator_id must be non-empty")
        return ReaderContext(
            reader_id=reader_id.strip(),
            operator_id=operator_id,
            location=normalize_location(location),
        )


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Where a scan cycle stands after a controller call."""

    state: ScanState
    digital_id: str
    message: str
    credential: Credential | None = None
    decision: Decision | None = None
    attempt: AccessAttempt | None = None
    error: ScanError | None = None

    @property
    def granted(self) -> bool:
        # Only a durably recorded decision counts as a grant.
        return (
            self.state is ScanState.LOGGED
            and self.decision is not None
            and self.decision.granted
        )

    @property
    def reason_code(self) -> ReasonCode | None:
        return self.decision.reason_code if self.decision is not None else None

    def presented(self) -> dict[str, object]:
        return {
            "state": self.state.value,
            "granted": self.granted,
            "reason_code": self.reason_code.value if self.reason_code else None,
            "message": self.message,
            "error": self.error.value if self.error else None,
        }


@dataclass(frozen=True, slots=True)
class _Pending:
    digital_id: str
    credential: Credential
    decision: Decision

    def as_result(self) -> ScanResult:
        return ScanResult(
            state=ScanState.EVALUATED,
            digital_id=self.digital_id,
            message=self.decision.message,
            credential=self.credential,
            decision=self.decision,
        )


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AccessSessionController:
    def __init__(
        self,
        context: ReaderContext,
        *,
        credentials: CredentialRepo,
        audit: AuditLogger,
        evaluator: PolicyEvaluator = default_evaluator,
        clock: Callable[[], datetime] = _utc_now,
        lookup_timeout_seconds: float | None = 5.0,
    ) -> None:
        self._context = context
        self._credentials = credentials
        self._audit = audit
        self._evaluator = evaluator
        self._clock = clock
        self._lookup_timeout = lookup_timeout_seconds

        self._state = ScanState.IDLE
        self._cycle = 0
        self._lookup_task: asyncio.Future[Credential | None] | None = None
        self._pending: _Pending | None = None
        self._finalizing = False
        self._last_result: ScanResult | None = None

    # -- introspection ---------------------------------------------------

    @property
    def context(self) -> ReaderContext:
        return self._context

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._state in IN_FLIGHT_STATES

    @property
    def pending(self) -> ScanResult | None:
        """The evaluated, not yet recorded cycle (None outside evaluated)."""
        return self._pending.as_result() if self._pending is not None else None

    @property
    def last_result(self) -> ScanResult | None:
        return self._last_result

    # -- scan cycle --------------------------------------------------------

    async def scan(self, digital_id: str) -> ScanResult:
        """Resolve and evaluate a candidate identifier.

        Returns an evaluated result awaiting accept()/override(), or a
        lookup_failed result.  Raises BusyError if a cycle is in flight
        and InvalidIdentifierError for a blank identifier.
        """
        candidate = (digital_id or "").strip()
        if not candidate:
            raise InvalidIdentifierError("digital ID must be non-empty")
        if self.in_flight:
            logger.warning(
                "Scan rejected, cycle already in flight",
                extra=self._log_extra(candidate),
            )
            raise BusyError(f"reader {self._context.reader_id} is busy")

        self._cycle += 1
        cycle = self._cycle
        self._state = ScanState.SCANNING
        self._last_result = None
        logger.debug("Scan started", extra=self._log_extra(candidate))

        try:
            credential = await self._lookup(candidate)
        except asyncio.CancelledError:
            if cycle != self._cycle:
                return self._cancelled_result(candidate)
            self._state = ScanState.IDLE
            raise
        except TimeoutError:
            if cycle != self._cycle:
                return self._cancelled_result(candidate)
            return self._lookup_failed(candidate, ScanError.LOOKUP_TIMEOUT)
        except Exception:
            if cycle != self._cycle:
                return self._cancelled_result(candidate)
            logger.exception("Credential lookup failed", extra=self._log_extra(candidate))
            return self._lookup_failed(candidate, ScanError.LOOKUP_ERROR)

        if cycle != self._cycle:
            # cancel() ran while the store was answering.
            return self._cancelled_result(candidate)
        if credential is None:
            return self._lookup_failed(candidate, ScanError.NOT_FOUND)

        self._state = ScanState.RESOLVED
        decision = self._evaluator.evaluate(credential, self._clock())
        if credential.has_integrity_issue:
            logger.warning(
                "Credential failed integrity check role=%s access_level=%s",
                credential.role.value,
                credential.access_level.value,
                extra=self._log_extra(candidate, decision.reason_code),
            )

        self._state = ScanState.EVALUATED
        self._pending = _Pending(candidate, credential, decision)
        logger.info(
            "Evaluated granted=%s",
            decision.granted,
            extra=self._log_extra(candidate, decision.reason_code),
        )
        return self._pending.as_result()

    async def accept(self, note: str | None = None) -> ScanResult:
        """Record the computed decision as-is, with an optional operator note."""
        pending = self._claim_pending()
        return await self._finalize(pending, pending.decision, note=note)

    async def override(self, *, granted: bool, reason: str = "") -> ScanResult:
        """Record the operator's forced outcome in place of the computed one.

        The computed verdict is kept on the audit record.  Forcing a grant
        for an inactive credential raises OverrideNotAllowedError and
        leaves the cycle evaluated.
        """
        pending = self._require_evaluated()
        if granted and not pending.credential.is_active:
            logger.warning(
                "Manual grant refused for inactive credential",
                extra=self._log_extra(pending.digital_id, pending.decision.reason_code),
            )
            raise OverrideNotAllowedError("inactive credentials cannot be granted")

        pending = self._claim_pending()
        decision = apply_override(pending.decision, granted=granted, reason=reason)
        logger.info(
            "Operator override granted=%s (computed granted=%s)",
            granted,
            pending.decision.granted,
            extra=self._log_extra(pending.digital_id, pending.decision.reason_code),
        )
        return await self._finalize(pending, decision)

    def cancel(self) -> bool:
        """Abandon a cycle that has not reached a decision.

        Returns True if a cycle was cancelled, False if there was nothing
        to cancel.  Raises InvalidStateError once the cycle is evaluated.
        """
        if self._state is ScanState.EVALUATED:
            raise InvalidStateError(
                "evaluated scan must be accepted or overridden, not cancelled"
            )
        if self._state not in (ScanState.SCANNING, ScanState.RESOLVED):
            return False

        self._cycle += 1  # invalidate the running scan()
        if self._lookup_task is not None:
            self._lookup_task.cancel()
            self._lookup_task = None
        self._state = ScanState.IDLE
        SCAN_CYCLES.labels(outcome="cancelled").inc()
        logger.info("Scan cancelled", extra=self._log_extra(None))
        return True

    # -- internals ---------------------------------------------------------

    async def _lookup(self, digital_id: str) -> Credential | None:
        task = asyncio.ensure_future(self._credentials.find_by_digital_id(digital_id))
        self._lookup_task = task
        try:
            if self._lookup_timeout is None:
                return await task
            return await asyncio.wait_for(task, timeout=self._lookup_timeout)
        finally:
            # A cancelled cycle may resume after the next one has started.
            if self._lookup_task is task:
                self._lookup_task = None

    def _require_evaluated(self) -> _Pending:
        if self._state is not ScanState.EVALUATED or self._pending is None:
            raise InvalidStateError(f"no evaluated scan to finalize ({self._state.value})")
        if self._finalizing:
            raise BusyError(f"reader {self._context.reader_id} is recording a decision")
        return self._pending

    def _claim_pending(self) -> _Pending:
        pending = self._require_evaluated()
        self._finalizing = True
        return pending

    async def _finalize(
        self,
        pending: _Pending,
        decision: Decision,
        *,
        note: str | None = None,
    ) -> ScanResult:
        attempt = AccessAttempt.new(
            decision=decision,
            digital_id=pending.digital_id,
            reader_operator_id=self._context.operator_id,
            reader_id=self._context.reader_id,
            location=self._context.location,
            note=note,
        )
        try:
            await self._audit.record(attempt)
        except PersistenceError as exc:
            error = (
                ScanError.LOG_TIMEOUT
                if isinstance(exc, AuditTimeoutError)
                else ScanError.LOG_FAILED
            )
            return self._log_failed(pending, decision, attempt, error)
        except asyncio.CancelledError:
            # Outcome of the write is unknown; surface it for follow-up.
            self._log_failed(pending, decision, attempt, ScanError.LOG_FAILED)
            raise

        ACCESS_DECISIONS.labels(
            granted=str(decision.granted).lower(),
            reason_code=decision.reason_code.value,
        ).inc()
        SCAN_CYCLES.labels(outcome="logged").inc()
        return self._finish(
            ScanResult(
                state=ScanState.LOGGED,
                digital_id=pending.digital_id,
                message=decision.message,
                credential=pending.credential,
                decision=decision,
                attempt=attempt,
            )
        )

    def _log_failed(
        self,
        pending: _Pending,
        decision: Decision,
        attempt: AccessAttempt,
        error: ScanError,
    ) -> ScanResult:
        SCAN_CYCLES.labels(outcome="log_failed").inc()
        logger.error(
            "Scan cycle ended without an audit record (%s)",
            error.value,
            extra=self._log_extra(pending.digital_id, decision.reason_code),
        )
        return self._finish(
            ScanResult(
                state=ScanState.LOG_FAILED,
                digital_id=pending.digital_id,
                message=ERROR_MESSAGES[error],
                credential=pending.credential,
                decision=decision,
                attempt=attempt,
                error=error,
            )
        )

    def _lookup_failed(self, digital_id: str, error: ScanError) -> ScanResult:
        SCAN_CYCLES.labels(outcome="lookup_failed").inc()
        logger.info("Lookup failed (%s)", error.value, extra=self._log_extra(digital_id))
        return self._finish(
            ScanResult(
                state=ScanState.LOOKUP_FAILED,
                digital_id=digital_id,
                message=ERROR_MESSAGES[error],
                error=error,
            )
        )

    def _cancelled_result(self, digital_id: str) -> ScanResult:
        # cancel() already moved the controller; leave its state alone.
        return ScanResult(
            state=ScanState.IDLE,
            digital_id=digital_id,
            message=ERROR_MESSAGES[ScanError.CANCELLED],
            error=ScanError.CANCELLED,
        )

    def _finish(self, result: ScanResult) -> ScanResult:
        self._state = result.state
        self._pending = None
        self._finalizing = False
        self._last_result = result
        return result

    def _log_extra(
        self, digital_id: str | None, reason_code: ReasonCode | None = None
    ) -> dict[str, object]:
        return {
            "reader_id": self._context.reader_id,
            "digital_id": digital_id,
            "reason_code": reason_code.value if reason_code else None,
            "state": self._state.value,
        }
