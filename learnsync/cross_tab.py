"""Change signals between client instances that share one LocalStore."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from .constants import SYNC_UPDATE

logger = logging.getLogger(__name__)


class SyncMessage(BaseModel):
    """Signal that shared local state changed; it never carries the state itself."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["SYNC_UPDATE"] = SYNC_UPDATE
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    origin: str


MessageHandler = Callable[[SyncMessage], None]


class BroadcastHub:
    """Routes messages between the buses joined to each named channel."""

    def __init__(self) -> None:
        self._channels: Dict[str, List["CrossTabBus"]] = {}
        self._lock = RLock()

    def join(self, channel: str, bus: "CrossTabBus") -> None:
        with self._lock:
            members = self._channels.setdefault(channel, [])
            if bus not in members:
                members.append(bus)

    def leave(self, channel: str, bus: "CrossTabBus") -> None:
        with self._lock:
            members = self._channels.get(channel, [])
            if bus in members:
                members.remove(bus)
            if not members:
                self._channels.pop(channel, None)

    def members(self, channel: str) -> List["CrossTabBus"]:
        with self._lock:
            return list(self._channels.get(channel, []))

    def broadcast(self, channel: str, message: SyncMessage, *, sender: "CrossTabBus") -> int:
        delivered = 0
        for member in self.members(channel):
            if member is sender:
                continue
            member._deliver(message)
            delivered += 1
        return delivered


class CrossTabBus:
    def __init__(self, hub: BroadcastHub, channel: str = "learnsync-sync") -> None:
        self._hub = hub
        self._channel = channel
        self._instance_id = uuid.uuid4().hex
        self._handlers: List[MessageHandler] = []
        self._lock = RLock()
        self._closed = False
        hub.join(channel, self)

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, kind: str = SYNC_UPDATE) -> int:
        """Notify every other instance on the channel; returns how many were reached."""
        if self._closed:
            logger.debug("Ignoring publish on closed bus %s", self._instance_id)
            return 0
        message = SyncMessage(kind=kind, origin=self._instance_id)
        return self._hub.broadcast(self._channel, message, sender=self)

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        with self._lock:
            self._handlers.append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return _unsubscribe

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._hub.leave(self._channel, self)
        with self._lock:
            self._handlers.clear()

    def _deliver(self, message: SyncMessage) -> None:
        if self._closed:
            return
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(message)
            except Exception:  # noqa: BLE001
                logger.exception("Cross-tab handler failed on %s", self._channel)


__all__ = ["BroadcastHub", "CrossTabBus", "MessageHandler", "SyncMessage"]
