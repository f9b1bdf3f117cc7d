"""
Pipeline events.

The job pipeline reports its transition points (state changes, balance
polls, approvals, fallbacks, broadcasts) through an injected hook instead
of printing. The default hook writes each event as a structlog line; callers
may pass any sink (metrics, a queue, a test recorder).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import structlog

from ..logging_config import get_event_logger

logger = logging.getLogger(__name__)

STATE_CHANGED = "state_changed"
FUNDS_POLL = "funds_poll"
FUNDS_RECEIVED = "funds_received"
FUNDS_TIMEOUT = "funds_timeout"
APPROVAL_ISSUED = "approval_issued"
APPROVAL_SKIPPED = "approval_skipped"
FALLBACK_TRIGGERED = "fallback_triggered"
TX_BROADCAST = "tx_broadcast"
TX_CONFIRMED = "tx_confirmed"
RETRY_SCHEDULED = "retry_scheduled"


@dataclass(frozen=True)
class PipelineEvent:
    name: str
    job_id: Optional[str] = None
    kind: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


EventHook = Callable[[PipelineEvent], None]


def log_event_hook(event: PipelineEvent) -> None:
    """Default sink: one structured log line per event."""
    get_event_logger().info(event.name, job_id=event.job_id, kind=event.kind, **event.data)


class EventEmitter:
    """Stamps events with the job identity and shields the job from sink failures."""

    def __init__(
        self,
        hook: Optional[EventHook] = None,
        *,
        job_id: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> None:
        self.hook = hook or log_event_hook
        self.job_id = job_id
        self.kind = kind

    def bind(self, *, job_id: Optional[str] = None, kind: Optional[str] = None) -> "EventEmitter":
        return EventEmitter(self.hook, job_id=job_id or self.job_id, kind=kind or self.kind)

    def emit(self, name: str, **data: Any) -> None:
        bound = structlog.contextvars.get_contextvars()
        event = PipelineEvent(
            name=name,
            job_id=self.job_id or bound.get("job_id"),
            kind=self.kind or bound.get("kind"),
            data=data,
        )
        try:
            self.hook(event)
        except Exception:
            logger.warning("Event hook failed for %s", name, exc_info=True)

    def on_retry(self, attempt: int, delay_ms: float, error: BaseException) -> None:
        """Adapter for ``RetryPolicy.on_retry``."""
        self.emit(RETRY_SCHEDULED, attempt=attempt + 1, delay_ms=delay_ms, error=type(error).__name__)
