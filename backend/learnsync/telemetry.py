"""In-process telemetry for aggregation, sync and profile server events."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel

logger = logging.getLogger("learnsync.telemetry")

EventName = Literal[
    "quiz_outcome_applied",
    "exam_outcome_applied",
    "achievements_unlocked",
    "profile_merged",
    "sync_started",
    "sync_completed",
    "sync_cancelled",
    "sync_failed",
    "profile_reset",
    "profile_signed_out",
    "remote_profile_stored",
]

# Logged at WARNING so failed syncs surface without enabling INFO.
_WARNING_EVENTS: FrozenSet[str] = frozenset({"sync_failed"})


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    profile_id: Optional[str]
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[TelemetryEvent], None]

_listeners: List[Tuple[Listener, Optional[FrozenSet[str]]]] = []
_lock = RLock()


def register_listener(listener: Listener, *, events: Optional[Iterable[str]] = None) -> None:
    """Register an in-process listener, optionally only for the named events."""
    names = frozenset(events) if events is not None else None
    with _lock:
        _listeners.append((listener, names))


def clear_listeners() -> None:
    """Remove all registered listeners. Mainly used to reset test state."""
    with _lock:
        _listeners.clear()


def emit_event(name: EventName, *, profile_id: Optional[str] = None, **fields: Any) -> None:
    """Emit a profile-scoped event and fan it out to matching listeners."""
    event = TelemetryEvent(name=name, profile_id=profile_id, payload=_sanitize(fields))

    with _lock:
        listeners = [listener for listener, names in _listeners if names is None or name in names]

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    structured = {"event": name, "profile_id": profile_id, **event.payload}
    level = logging.WARNING if name in _WARNING_EVENTS else logging.INFO
    logger.log(level, "TELEMETRY %s", json.dumps(structured, default=str))


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            sanitized[key] = value.isoformat()
        elif isinstance(value, BaseModel):
            sanitized[key] = value.model_dump(mode="json")
        elif isinstance(value, (set, frozenset)):
            sanitized[key] = sorted(value)
        else:
            sanitized[key] = value
    return sanitized


__all__ = [
    "EventName",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
]
