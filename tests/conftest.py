from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Set

import pytest

from learnsync.cache import LocalStore
from learnsync.config import Settings
from learnsync.cross_tab import BroadcastHub
from learnsync.db import build_engine
from learnsync.errors import TransientRemoteError
from learnsync.progress import ProgressRecord
from learnsync.telemetry import clear_listeners


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "remote_base_url": "https://remote.test",
        "remote_api_key": "secret",
        "local_database_url": "sqlite://",
        "debounce_seconds": 0.05,
        "retry_max_attempts": 2,
        "retry_initial_delay": 0.0,
        "retry_backoff_factor": 1.0,
    }
    values.update(overrides)
    return Settings(**values)


class FakeGateway:
    """In-memory remote store that records calls and can be switched offline."""

    def __init__(self) -> None:
        self.configured = True
        self.offline = False
        self.failing: Set[str] = set()
        self.collections: Dict[str, List[Dict[str, Any]]] = {}
        self.profiles: Dict[str, ProgressRecord] = {}
        self.leaderboard: List[Dict[str, Any]] = []
        self.notifications: List[Dict[str, Any]] = []
        self.config: Dict[str, Any] = {}
        self.calls: List[tuple] = []
        self.saved_profiles: List[ProgressRecord] = []
        self.saved_collections: List[tuple] = []
        self.saved_configs: List[Dict[str, Any]] = []
        self.gate: Optional[asyncio.Event] = None
        self.save_delay = 0.0

    def is_configured(self) -> bool:
        return self.configured

    async def _enter(self, name: str) -> None:
        self.calls.append(("fetch", name))
        if self.gate is not None:
            await self.gate.wait()
        if self.offline or name in self.failing:
            raise TransientRemoteError(f"{name} unavailable")

    async def _slow_save(self) -> None:
        if self.save_delay:
            await asyncio.sleep(self.save_delay)

    async def fetch_collection(self, name: str) -> List[Dict[str, Any]]:
        await self._enter(name)
        return [dict(item) for item in self.collections.get(name, [])]

    async def save_collection(self, name: str, items: List[Dict[str, Any]]) -> None:
        self.calls.append(("save", name))
        await self._slow_save()
        if self.offline or f"save:{name}" in self.failing:
            raise TransientRemoteError(f"cannot save {name}")
        self.saved_collections.append((name, items))
        self.collections[name] = list(items)

    async def fetch_profile(self, remote_id: str) -> Optional[ProgressRecord]:
        await self._enter("profile")
        profile = self.profiles.get(remote_id)
        return profile.model_copy(deep=True) if profile else None

    async def save_profile(self, profile: ProgressRecord) -> None:
        self.calls.append(("save", "profile"))
        await self._slow_save()
        if self.offline or "save:profile" in self.failing:
            raise TransientRemoteError("cannot save profile")
        self.saved_profiles.append(profile.model_copy(deep=True))
        if profile.remote_id:
            self.profiles[profile.remote_id] = profile.model_copy(deep=True)

    async def fetch_leaderboard(self) -> List[Dict[str, Any]]:
        await self._enter("leaderboard")
        return list(self.leaderboard)

    async def fetch_notifications(self) -> List[Dict[str, Any]]:
        await self._enter("notifications")
        return list(self.notifications)

    async def fetch_config(self) -> Dict[str, Any]:
        await self._enter("config")
        return dict(self.config)

    async def save_config(self, config: Dict[str, Any]) -> None:
        self.calls.append(("save", "config"))
        if self.offline or "save:config" in self.failing:
            raise TransientRemoteError("cannot save config")
        self.saved_configs.append(config)
        self.config = dict(config)

    def fetch_count(self, name: str) -> int:
        return sum(1 for kind, target in self.calls if kind == "fetch" and target == name)

    def save_count(self, name: str) -> int:
        return sum(1 for kind, target in self.calls if kind == "save" and target == name)


@pytest.fixture(autouse=True)
def _reset_telemetry():
    clear_listeners()
    yield
    clear_listeners()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> LocalStore:
    return LocalStore(engine, "test")


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
