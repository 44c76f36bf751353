"""Notification sink.

The engine emits one event per fixture state transition. Delivery is
fire-and-forget: a failing sink is logged and never fails or blocks the
operation that produced the event.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

EVENT_FIXTURE_SCHEDULED = "fixture_scheduled"
EVENT_FIXTURE_COMPLETED = "fixture_completed"
EVENT_BRACKET_ADVANCED = "bracket_advanced"
EVENT_COMPETITION_COMPLETED = "competition_completed"


class Notifier:
    """Interface for downstream broadcast. Subclasses override notify()."""

    def notify(self, event_type: str, fixture_id: Optional[int], payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default sink: writes events to the log (no broadcast transport configured)."""

    def notify(self, event_type: str, fixture_id: Optional[int], payload: Dict[str, Any]) -> None:
        logger.info(f"[EVENT] {event_type} fixture={fixture_id} payload={payload}")


class RecordingNotifier(Notifier):
    """Keeps events in memory for inspection."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def notify(self, event_type: str, fixture_id: Optional[int], payload: Dict[str, Any]) -> None:
        self.events.append(
            {
                "event_type": event_type,
                "fixture_id": fixture_id,
                "payload": dict(payload),
                "emitted_at": datetime.now(timezone.utc),
            }
        )

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["event_type"] == event_type]


_default_notifier: Notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    """FastAPI dependency; tests override it with a RecordingNotifier."""
    return _default_notifier


def emit(notifier: Optional[Notifier], event_type: str, fixture_id: Optional[int], **payload: Any) -> None:
    """Send one event, swallowing and logging sink failures."""
    if notifier is None:
        return
    try:
        notifier.notify(event_type, fixture_id, payload)
    except Exception as e:
        logger.error(f"Notification sink failed for {event_type} (fixture {fixture_id}): {e}")
