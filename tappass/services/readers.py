"""Registry of reader sessions: one AccessSessionController per reader.

A reader is a physical entry point (a door, a turnstile, a phone held at
the lobby desk).  Each open reader owns exactly one controller, built
with the operator and location that opened it.  Independent readers
scan concurrently; they share only the credential store and the audit
sink.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from tappass.core.config import SETTINGS
from tappass.services import stores
from tappass.services.access_session import AccessSessionController, ReaderContext
from tappass.services.errors import BusyError, ReaderHeldError

logger = logging.getLogger(__name__)

ControllerFactory = Callable[[ReaderContext], AccessSessionController]


class ReaderRegistry:
    def __init__(self, factory: ControllerFactory) -> None:
        self._factory = factory
        self._readers: dict[str, AccessSessionController] = {}

    def open(
        self, *, reader_id: str, operator_id: str, location: str | None
    ) -> AccessSessionController:
        """Open a reader, or reconfigure it if no cycle is in flight.

        Only the operator holding a reader can reopen it; anyone else gets
        ReaderHeldError until it is closed.  Reopening replaces the
        controller, so a new location only applies to scans that start
        afterwards.
        """
        context = ReaderContext.new(
            reader_id=reader_id, operator_id=operator_id, location=location
        )
        existing = self._readers.get(context.reader_id)
        if existing is not None and existing.context.operator_id != context.operator_id:
            logger.warning(
                "Operator %s tried to open a reader held by %s",
                context.operator_id,
                existing.context.operator_id,
                extra={"reader_id": context.reader_id},
            )
            raise ReaderHeldError(f"reader {context.reader_id} is held by another operator")
        if existing is not None and existing.in_flight:
            raise BusyError(f"reader {context.reader_id} has a scan in flight")

        controller = self._factory(context)
        self._readers[context.reader_id] = controller
        logger.info(
            "Reader opened by operator=%s location=%r",
            context.operator_id,
            context.location,
            extra={"reader_id": context.reader_id},
        )
        return controller

    def get(self, reader_id: str) -> AccessSessionController | None:
        return self._readers.get(reader_id)

    def close(self, reader_id: str) -> bool:
        controller = self._readers.get(reader_id)
        if controller is None:
            return False
        if controller.in_flight:
            raise BusyError(f"reader {reader_id} has a scan in flight")
        del self._readers[reader_id]
        logger.info("Reader closed", extra={"reader_id": reader_id})
        return True

    def clear(self) -> None:
        self._readers.clear()


def build_controller(context: ReaderContext) -> AccessSessionController:
    return AccessSessionController(
        context,
        credentials=stores.credential_repo,
        audit=stores.audit_logger,
        evaluator=stores.policy_evaluator,
        lookup_timeout_seconds=SETTINGS.lookup_timeout_seconds,
    )


reader_registry = ReaderRegistry(build_controller)
