"""Sync lifecycle events: typed names, in-process listeners and a log line per event."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Literal, Optional, Tuple, get_args

logger = logging.getLogger("learnsync.telemetry")

SyncEventName = Literal[
    "sync_skipped",
    "sync_completed",
    "sync_paused",
    "collection_fallback",
    "collection_push_failed",
    "user_push_completed",
]

SYNC_EVENTS: FrozenSet[str] = frozenset(get_args(SyncEventName))


@dataclass(frozen=True)
class TelemetryEvent:
    name: SyncEventName
    payload: Dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def collection(self) -> Optional[str]:
        """Collection the event concerns, for per-collection events."""
        value = self.payload.get("collection")
        return value if isinstance(value, str) else None

    def log_record(self) -> Dict[str, Any]:
        return {"event": self.name, **self.payload}


Listener = Callable[[TelemetryEvent], None]

_listeners: List[Tuple[Listener, Optional[FrozenSet[str]]]] = []
_lock = RLock()


def _check_names(names: Iterable[str]) -> FrozenSet[str]:
    wanted = frozenset(names)
    unknown = wanted - SYNC_EVENTS
    if unknown:
        raise ValueError(f"Unknown sync event(s): {', '.join(sorted(unknown))}")
    return wanted


def register_listener(listener: Listener, *, events: Optional[Iterable[str]] = None) -> Callable[[], None]:
    """Register an in-process listener and return a callable that removes it.

    With ``events`` the listener only hears those event names.
    """
    wanted = _check_names(events) if events is not None else None
    entry = (listener, wanted)
    with _lock:
        _listeners.append(entry)

    def _remove() -> None:
        with _lock:
            if entry in _listeners:
                _listeners.remove(entry)

    return _remove


def clear_listeners() -> None:
    """Remove all registered listeners. Mainly used to reset test state."""
    with _lock:
        _listeners.clear()


def emit_event(name: SyncEventName, **fields: Any) -> TelemetryEvent:
    """Emit a sync event to listeners and the ``learnsync.telemetry`` log."""
    _check_names([name])
    event = TelemetryEvent(name=name, payload=_sanitize(fields))

    with _lock:
        listeners = [listener for listener, wanted in _listeners if wanted is None or name in wanted]

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    logger.info("TELEMETRY %s", json.dumps(event.log_record(), default=str))
    return event


class EventRecorder:
    """Listener that keeps every event it hears, in order."""

    def __init__(self) -> None:
        self.events: List[TelemetryEvent] = []

    def __call__(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [event.name for event in self.events]

    def of(self, name: SyncEventName) -> List[TelemetryEvent]:
        return [event for event in self.events if event.name == name]

    def for_collection(self, collection: str) -> List[TelemetryEvent]:
        return [event for event in self.events if event.collection == collection]


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            sanitized[key] = value.isoformat()
        elif isinstance(value, (set, frozenset)):
            sanitized[key] = sorted(value)
        elif isinstance(value, tuple):
            sanitized[key] = list(value)
        else:
            sanitized[key] = value
    return sanitized


__all__ = [
    "EventRecorder",
    "Listener",
    "SYNC_EVENTS",
    "SyncEventName",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
]
