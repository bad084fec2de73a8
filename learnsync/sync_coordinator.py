"""Offline-first synchronisation between LocalStore and the remote gateway.

LocalStore is the durable copy every read is served from. The coordinator
refreshes it from the remote store when the remote answers with something
useful and otherwise leaves it alone, so an unreachable remote only ever
makes data stale, never empty. Local writes land in LocalStore first and are
pushed in the background; a collection with an unacknowledged push is
"dirty" and incoming fetches will not overwrite it until the push succeeds.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Union

from pydantic_core import to_jsonable_python

from .cache.local_store import LocalStore
from .config import Settings, get_settings
from .constants import COLLECTION_KEYS, CONTENT_COLLECTIONS, FAST_SYNC_PERIODS, PENDING_PUSHES_KEY, SYNC_UPDATE
from .content import AppConfig, CollectionStatus, SyncEnvelope, SyncReport, filter_notifications, merge_remote_config
from .cross_tab import CrossTabBus, SyncMessage
from .gateway import Item, RemoteContentGateway
from .progress import ProgressRecord
from .retry import RetryPolicy
from .telemetry import emit_event

logger = logging.getLogger(__name__)

# (source, collections) where source is "remote", "local" or "cross_tab".
ChangeListener = Callable[[str, List[str]], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _same(left: Any, right: Any) -> bool:
    """Structural equality over the JSON shape, independent of key order."""
    return to_jsonable_python(left) == to_jsonable_python(right)


def _is_trivial(result: Any) -> bool:
    return result is None or (isinstance(result, (list, dict)) and not result)


class SyncCoordinator:
    def __init__(
        self,
        store: LocalStore,
        gateway: RemoteContentGateway,
        bus: Optional[CrossTabBus] = None,
        *,
        settings: Optional[Settings] = None,
        retry_policy: Optional[RetryPolicy] = None,
        seed: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._bus = bus
        self._settings = settings or get_settings()
        self._retry = retry_policy or RetryPolicy.from_settings(self._settings)
        self._seed: Dict[str, Any] = dict(seed or {})
        self._default_progress = ProgressRecord.model_validate(
            to_jsonable_python(self._seed.get("profile") or ProgressRecord())
        )

        self._envelopes: Dict[str, SyncEnvelope] = {
            name: SyncEnvelope(collection=name) for name in COLLECTION_KEYS
        }
        self._generations: Dict[str, int] = {name: 0 for name in COLLECTION_KEYS}
        self._dirty: Dict[str, Any] = self._load_pending()
        self._inflight: Dict[str, asyncio.Task] = {}
        self._listeners: List[ChangeListener] = []

        self._syncing = False
        self._consecutive_errors = 0
        self._fast_remaining = 0
        self._last_report: Optional[SyncReport] = None

        self._tasks: Set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._pending_user: Optional[ProgressRecord] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_collection(self, name: str) -> List[Item]:
        """Cached items for ``name``; seed content only while nothing was ever cached."""
        key = self._key(name)
        seeded = to_jsonable_python(self._seed.get(name, []))
        value = self._store.get(key, seeded)
        return value if isinstance(value, list) else seeded

    def read_leaderboard(self) -> List[Item]:
        return self.read_collection("leaderboard")

    def read_progress(self) -> ProgressRecord:
        stored = self._store.get(COLLECTION_KEYS["profile"], None, model=ProgressRecord)
        if stored is None:
            return self._default_progress.model_copy(deep=True)
        return stored

    def read_config(self) -> AppConfig:
        stored = self._store.get(COLLECTION_KEYS["config"], None, model=AppConfig)
        if stored is not None:
            return stored
        return AppConfig.model_validate(to_jsonable_python(self._seed.get("config") or {}))

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def should_pause(self) -> bool:
        return self._consecutive_errors >= self._settings.max_consecutive_errors

    async def sync_all(self) -> Optional[SyncReport]:
        """Refresh every collection from the remote store.

        Returns ``None`` when another sync is already running. Never raises
        for remote failures; each collection succeeds or falls back alone.
        """
        if self._syncing:
            logger.debug("sync_all skipped: a sync is already in flight")
            emit_event("sync_skipped", reason="in_flight")
            return None

        started = _now()
        if not self._gateway.is_configured():
            logger.debug("sync_all skipped: remote gateway is not configured")
            emit_event("sync_skipped", reason="not_configured")
            report = SyncReport(started_at=started, finished_at=_now(), configured=False)
            self._last_report = report
            return report

        self._syncing = True
        try:
            report = await self._sync(started)
        finally:
            self._syncing = False

        if report.all_failed:
            self._consecutive_errors += 1
        else:
            self._consecutive_errors = 0
        self._last_report = report

        emit_event(
            "sync_completed",
            changed=report.changed,
            failed=report.failed,
            consecutive_errors=self._consecutive_errors,
            duration_ms=round((report.finished_at - report.started_at).total_seconds() * 1000),
        )
        if report.changed:
            self._notify("remote", report.changed)
            self._publish()
        return report

    async def _sync(self, started: datetime) -> SyncReport:
        report = SyncReport(started_at=started)
        await self._retry_dirty()

        progress = self.read_progress()
        operations: Dict[str, Callable[[], Awaitable[Any]]] = {
            name: self._collection_fetcher(name) for name in CONTENT_COLLECTIONS
        }
        operations["notifications"] = self._gateway.fetch_notifications
        operations["leaderboard"] = self._gateway.fetch_leaderboard
        operations["config"] = self._gateway.fetch_config
        if progress.remote_id:
            remote_id = progress.remote_id
            operations["profile"] = lambda: self._gateway.fetch_profile(remote_id)

        generations = dict(self._generations)
        attempted = _now()
        results = await asyncio.gather(
            *(self._retry.run(op, description=f"fetch {name}") for name, op in operations.items()),
            return_exceptions=True,
        )

        for name, result in zip(operations, results):
            envelope = self._envelopes[name]
            envelope.last_attempt = attempted
            status = self._apply_fetch(name, result, generations[name], progress)
            envelope.status = status
            report.outcomes[name] = status
            if status == "updated":
                report.changed.append(name)

        report.finished_at = _now()
        return report

    def _collection_fetcher(self, name: str) -> Callable[[], Awaitable[List[Item]]]:
        async def _fetch() -> List[Item]:
            return await self._gateway.fetch_collection(name)

        return _fetch

    def _apply_fetch(
        self, name: str, result: Any, generation: int, progress: ProgressRecord
    ) -> CollectionStatus:
        envelope = self._envelopes[name]
        if isinstance(result, BaseException):
            logger.warning("Remote fetch of %s failed, keeping cached data: %s", name, result)
            logger.debug("Fetch failure detail for %s", name, exc_info=result)
            emit_event("collection_fallback", collection=name, error=str(result))
            return "fallback"

        envelope.last_success = _now()
        envelope.remote_snapshot = to_jsonable_python(result)

        if name in self._dirty or self._generations[name] != generation:
            logger.info("Keeping local %s: a local write is newer than the fetched copy", name)
            return "deferred"
        if _is_trivial(result):
            return "empty"

        key = self._key(name)
        if name == "profile":
            current = self.read_progress()
            remote = ProgressRecord.model_validate(to_jsonable_python(result))
            candidate = remote.model_copy(
                update={"local_id": current.local_id, "last_sync_timestamp": current.last_sync_timestamp},
                deep=True,
            )
            if self._store.contains(key) and _same(candidate, current):
                return "unchanged"
            if self._store.contains(key) and candidate.xp < current.xp:
                # XP only goes down through an explicit reset; the local record is
                # queued for the next push instead.
                logger.warning(
                    "Remote profile %s has %s XP, below local %s; keeping local",
                    remote.remote_id,
                    candidate.xp,
                    current.xp,
                )
                self._mark_dirty("profile", current)
                return "deferred"
            value: Any = candidate.model_copy(update={"last_sync_timestamp": _now()})
        elif name == "config":
            value = merge_remote_config(self.read_config(), result)
        elif name == "notifications":
            value = filter_notifications(result, progress)
        else:
            value = result

        if name != "profile" and self._store.contains(key) and _same(value, self._store.get(key, None)):
            return "unchanged"

        self._store.set(key, value)
        envelope.local_snapshot = to_jsonable_python(value)
        return "updated"

    # ------------------------------------------------------------------
    # Local writes and pushes
    # ------------------------------------------------------------------

    def push_local(self, name: str, items: Iterable[Any]) -> "asyncio.Task[bool]":
        """Write ``items`` locally now and push them to the remote in the background.

        Must be called from a running event loop. The returned task resolves
        to ``True`` once the remote acknowledged the write.
        """
        payload = to_jsonable_python(list(items))
        return self._write_and_push(name, payload)

    def save_config(self, config: Union[AppConfig, Dict[str, Any]]) -> "asyncio.Task[bool]":
        payload = AppConfig.model_validate(to_jsonable_python(config)).model_dump(mode="json")
        return self._write_and_push("config", payload)

    def push_user(self, progress: ProgressRecord) -> None:
        """Persist ``progress`` immediately and schedule a debounced remote save.

        The remote save needs a running event loop. Without one the record is
        kept as a pending push and the next ``sync_all`` sends it.
        """
        record = progress.model_copy(deep=True)
        self._store.set(COLLECTION_KEYS["profile"], record)
        self._mark_local("profile", record)

        if not record.remote_id or not self._gateway.is_configured():
            self._publish()
            return

        self._mark_dirty("profile", record)
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Still recorded as a pending push; the next sync_all sends it.
            logger.warning("push_user called without a running event loop; remote save deferred")
            self._pending_user = None
            return
        self._pending_user = record
        self._debounce_handle = loop.call_later(self._settings.debounce_seconds, self._flush_user_push)

    def _write_and_push(self, name: str, payload: Any) -> "asyncio.Task[bool]":
        self._store.set(self._key(name), payload)
        self._mark_local(name, payload)
        if not self._gateway.is_configured():
            self._publish()
            return self._spawn(self._local_only())
        self._mark_dirty(name, payload)
        return self._queue_push(name, lambda: self._push_and_announce(name, payload))

    def _mark_local(self, name: str, payload: Any) -> None:
        self._generations[name] += 1
        self._envelopes[name].local_snapshot = to_jsonable_python(payload)
        self._notify("local", [name])

    @staticmethod
    async def _local_only() -> bool:
        return False

    async def _push_and_announce(self, name: str, payload: Any) -> bool:
        pushed = await self._push(name, payload)
        if pushed:
            self._publish()
        return pushed

    async def _push(self, name: str, payload: Any) -> bool:
        if name == "profile":
            operation: Callable[[], Awaitable[None]] = lambda: self._gateway.save_profile(payload)
        elif name == "config":
            operation = lambda: self._gateway.save_config(payload)
        else:
            operation = lambda: self._gateway.save_collection(name, payload)

        try:
            await self._retry.run(operation, description=f"save {name}")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Remote save of %s failed, local copy kept: %s", name, exc)
            logger.debug("Save failure detail for %s", name, exc_info=exc)
            emit_event("collection_push_failed", collection=name, error=str(exc))
            return False

        # A newer local write keeps the collection dirty until it is pushed too.
        if self._dirty.get(name) is payload:
            self._dirty.pop(name, None)
            self._save_pending()
        return True

    def _flush_user_push(self) -> None:
        self._debounce_handle = None
        record, self._pending_user = self._pending_user, None
        if record is not None:
            self._queue_push("profile", lambda: self._push_user_now(record))

    def _queue_push(self, name: str, operation: Callable[[], Awaitable[bool]]) -> "asyncio.Task[bool]":
        """Run ``operation`` once any earlier push of ``name`` has settled.

        Pushes of one collection never overlap, so the remote always receives
        local writes in the order they were made.
        """
        previous = self._inflight.get(name)

        async def _run() -> bool:
            if previous is not None and not previous.done():
                await asyncio.wait({previous})
            return await operation()

        task = self._spawn(_run())
        self._inflight[name] = task

        def _settled(done: asyncio.Task) -> None:
            if self._inflight.get(name) is done:
                self._inflight.pop(name, None)

        task.add_done_callback(_settled)
        return task

    def _mark_dirty(self, name: str, payload: Any) -> None:
        self._dirty[name] = payload
        self._save_pending()

    def _save_pending(self) -> None:
        if self._dirty:
            self._store.set(PENDING_PUSHES_KEY, self._dirty)
        else:
            self._store.remove(PENDING_PUSHES_KEY)

    def _load_pending(self) -> Dict[str, Any]:
        stored = self._store.get(PENDING_PUSHES_KEY, {})
        if not isinstance(stored, dict):
            return {}
        pending: Dict[str, Any] = {}
        for name, payload in stored.items():
            if name not in COLLECTION_KEYS:
                logger.warning("Dropping pending push for unknown collection %s", name)
                continue
            if name == "profile":
                try:
                    payload = ProgressRecord.model_validate(payload)
                except ValueError as exc:
                    logger.warning("Dropping unreadable pending profile push: %s", exc)
                    continue
            pending[name] = payload
        if pending:
            logger.info("Resuming %s pending push(es): %s", len(pending), ", ".join(sorted(pending)))
        return pending

    async def _push_user_now(self, record: ProgressRecord) -> bool:
        pushed = await self._push("profile", record)
        if not pushed:
            return False
        key = COLLECTION_KEYS["profile"]
        current = self._store.get(key, None, model=ProgressRecord)
        if current is not None and _same(current, record):
            self._store.set(key, current.model_copy(update={"last_sync_timestamp": _now()}))
        emit_event("user_push_completed", remote_id=record.remote_id, xp=record.xp)
        self._publish()
        return True

    async def _retry_dirty(self) -> None:
        for name, payload in list(self._dirty.items()):
            if name in self._inflight:
                continue
            if name == "profile":
                if self._debounce_handle is not None:
                    continue
                await self._queue_push(name, lambda record=payload: self._push_user_now(record))
            else:
                await self._queue_push(name, lambda name=name, payload=payload: self._push(name, payload))

    # ------------------------------------------------------------------
    # Scheduling and lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to cross-tab signals, sync once and start the interval loop."""
        if self._loop_task is not None:
            return
        self._closed = False
        if self._bus is not None and self._unsubscribe is None:
            self._unsubscribe = self._bus.subscribe(self._on_cross_tab)
        self._wakeup = asyncio.Event()
        await self.sync_all()
        self._loop_task = asyncio.get_running_loop().create_task(self._run_loop())

    def trigger_sync(self) -> "asyncio.Task[Optional[SyncReport]]":
        """Sync now and poll on the fast interval for the next few periods."""
        self._fast_remaining = FAST_SYNC_PERIODS
        if self._wakeup is not None:
            self._wakeup.set()
        return self._spawn(self.sync_all())

    async def _run_loop(self) -> None:
        while True:
            if self.should_pause:
                pause = self._settings.error_pause_seconds
                logger.warning(
                    "Remote unreachable for %s syncs in a row, pausing for %.0fs",
                    self._consecutive_errors,
                    pause,
                )
                emit_event("sync_paused", consecutive_errors=self._consecutive_errors, pause_seconds=pause)
                await asyncio.sleep(pause)
                self._consecutive_errors = 0
            else:
                await self._wait_for_tick()
            try:
                await self.sync_all()
            except Exception:  # noqa: BLE001
                logger.exception("Unexpected failure in the sync loop")

    async def _wait_for_tick(self) -> None:
        assert self._wakeup is not None
        while True:
            self._wakeup.clear()
            fast = self._fast_remaining > 0
            interval = (
                self._settings.fast_sync_interval_seconds if fast else self._settings.sync_interval_seconds
            )
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=interval)
            except asyncio.TimeoutError:
                if fast:
                    self._fast_remaining -= 1
                return

    async def aclose(self) -> None:
        """Stop the loop, flush a pending profile push and release every resource."""
        if self._closed:
            return
        self._closed = True

        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None

        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        pending, self._pending_user = self._pending_user, None
        if pending is not None:
            await self._queue_push("profile", lambda: self._push_user_now(pending))

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._wakeup = None

    async def __aenter__(self) -> "SyncCoordinator":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Listeners and status
    # ------------------------------------------------------------------

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def status(self) -> Dict[str, Any]:
        report = self._last_report
        return {
            "configured": self._gateway.is_configured(),
            "running": self._loop_task is not None and not self._loop_task.done(),
            "syncing": self._syncing,
            "dirty": sorted(self._dirty),
            "consecutive_errors": self._consecutive_errors,
            "fast_periods_remaining": self._fast_remaining,
            "background_tasks": len(self._tasks),
            "last_sync_started_at": report.started_at if report else None,
            "collections": {name: envelope.status for name, envelope in self._envelopes.items()},
        }

    def envelope(self, name: str) -> SyncEnvelope:
        self._key(name)
        return self._envelopes[name].model_copy(deep=True)

    def _on_cross_tab(self, message: SyncMessage) -> None:
        if message.kind != SYNC_UPDATE:
            return
        logger.debug("Cross-tab update from %s", message.origin)
        self._notify("cross_tab", list(COLLECTION_KEYS))

    def _notify(self, source: str, collections: List[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(source, list(collections))
            except Exception:  # noqa: BLE001
                logger.exception("Sync listener failed for %s", source)

    def _publish(self) -> None:
        if self._bus is not None:
            self._bus.publish(SYNC_UPDATE)

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)  # type: ignore[arg-type]
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    def _key(name: str) -> str:
        try:
            return COLLECTION_KEYS[name]
        except KeyError:
            raise ValueError(f"Unknown collection {name!r}") from None


__all__ = ["ChangeListener", "SyncCoordinator"]
