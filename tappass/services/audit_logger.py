"""Audit logger: durably records one AccessAttempt per completed scan cycle.

Contract
--------
``record()`` either returns (the attempt is stored) or raises
PersistenceError.  It never returns on a partial write and never retries
without bound: each call makes at most ``1 + max_retries`` tries, every
try capped by ``timeout_seconds``.

Retries resend the same attempt (same id).  Sinks treat a repeated id as
already written, so a try that timed out after the sink committed does
not produce a second record when retried.
"""

from __future__ import annotations

import asyncio
import logging
import time

from tappass.core.metrics import AUDIT_WRITE_DURATION, AUDIT_WRITE_FAILURES
from tappass.models.access_attempt import AccessAttempt
from tappass.repos.access_log_repo import AccessLogRepo
from tappass.services.errors import AuditTimeoutError, PersistenceError

logger = logging.getLogger(__name__)


class AuditLogger:
    def __init__(
        self,
        sink: AccessLogRepo,
        *,
        max_retries: int = 1,
        timeout_seconds: float | None = 5.0,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._sink = sink
        self._max_retries = max_retries
        self._timeout = timeout_seconds

    @property
    def sink(self) -> AccessLogRepo:
        return self._sink

    async def record(self, attempt: AccessAttempt) -> None:
        tries = self._max_retries + 1
        context = {
            "attempt_id": str(attempt.id),
            "digital_id": attempt.digital_id,
            "reader_id": attempt.reader_id,
            "reason_code": attempt.reason_code.value,
        }
        last_exc: BaseException | None = None
        last_timed_out = False

        start = time.monotonic()
        try:
            for n in range(1, tries + 1):
                try:
                    await self._append(attempt)
                except TimeoutError as exc:
                    last_exc, last_timed_out = exc, True
                    AUDIT_WRITE_FAILURES.labels(kind="timeout").inc()
                    logger.warning(
                        "Audit write timed out after %.2fs (try %d/%d)",
                        self._timeout,
                        n,
                        tries,
                        extra=context,
                    )
                except Exception as exc:
                    last_exc, last_timed_out = exc, False
                    AUDIT_WRITE_FAILURES.labels(kind="error").inc()
                    logger.warning(
                        "Audit write failed (try %d/%d): %s",
                        n,
                        tries,
                        exc,
                        extra=context,
                    )
                else:
                    logger.info(
                        "Recorded access attempt granted=%s",
                        attempt.granted,
                        extra=context,
                    )
                    return
        finally:
            AUDIT_WRITE_DURATION.observe(time.monotonic() - start)

        logger.error(
            "Access attempt could not be recorded after %d tries", tries, extra=context
        )
        if last_timed_out:
            raise AuditTimeoutError(
                "audit sink timed out; access decision not recorded", attempts=tries
            ) from last_exc
        raise PersistenceError(
            "audit sink failed; access decision not recorded", attempts=tries
        ) from last_exc

    async def _append(self, attempt: AccessAttempt) -> None:
        if self._timeout is None:
            await self._sink.append(attempt)
            return
        await asyncio.wait_for(self._sink.append(attempt), timeout=self._timeout)
