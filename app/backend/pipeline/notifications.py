"""Outbound ``submission_created`` event for email triggers and audit logging."""
from typing import Callable, List

import structlog

from .security import log_audit_event

log = structlog.get_logger()

Handler = Callable[[str], None]


class SubmissionEvents:
    """Synchronous fire-and-forget dispatcher.

    A handler that raises is logged and skipped; neither the other handlers
    nor the emitting request see the failure.
    """

    def __init__(self) -> None:
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> Handler:
        if handler not in self._handlers:
            self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def emit_submission_created(self, submission_id: str) -> None:
        log.info("submission_created", submission_id=submission_id, handlers=len(self._handlers))
        for handler in list(self._handlers):
            try:
                handler(submission_id)
            except Exception as exc:  # noqa: BLE001
                log.error(
                    "submission_created_handler_failed",
                    submission_id=submission_id,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(exc),
                )


def audit_submission_created(submission_id: str) -> None:
    log_audit_event(event_type="submission_created", submission_id=submission_id)


submission_events = SubmissionEvents()
submission_events.subscribe(audit_submission_created)
