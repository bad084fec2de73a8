"""Boundary to the remote content/profile store."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx

from .config import Settings
from .errors import ConfigurationError, TransientRemoteError
from .progress import ProgressRecord

logger = logging.getLogger(__name__)

Item = Dict[str, Any]


class RemoteContentGateway(Protocol):
    """Operations the sync layer needs from the remote store.

    Every operation must be safe to retry. Implementations raise any exception
    on failure; the coordinator treats all of them alike.
    """

    def is_configured(self) -> bool:  # pragma: no cover - protocol definition
        ...

    async def fetch_collection(self, name: str) -> List[Item]:  # pragma: no cover
        ...

    async def save_collection(self, name: str, items: List[Item]) -> None:  # pragma: no cover
        ...

    async def fetch_profile(self, remote_id: str) -> Optional[ProgressRecord]:  # pragma: no cover
        ...

    async def save_profile(self, profile: ProgressRecord) -> None:  # pragma: no cover
        ...

    async def fetch_leaderboard(self) -> List[Item]:  # pragma: no cover
        ...

    async def fetch_notifications(self) -> List[Item]:  # pragma: no cover
        ...

    async def fetch_config(self) -> Item:  # pragma: no cover
        ...

    async def save_config(self, config: Item) -> None:  # pragma: no cover
        ...


class HttpContentGateway:
    """JSON-over-HTTP gateway built on ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        *,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Optional[httpx.AsyncClient] = None) -> "HttpContentGateway":
        return cls(
            settings.remote_base_url,
            settings.remote_api_key,
            timeout_seconds=settings.remote_timeout_seconds,
            client=client,
        )

    def is_configured(self) -> bool:
        return bool(self._base_url and self._api_key)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def fetch_collection(self, name: str) -> List[Item]:
        payload = await self._request("GET", f"/collections/{quote(name, safe='')}")
        return self._expect_list(payload, name)

    async def save_collection(self, name: str, items: List[Item]) -> None:
        await self._request("PUT", f"/collections/{quote(name, safe='')}", json=items)

    async def fetch_profile(self, remote_id: str) -> Optional[ProgressRecord]:
        payload = await self._request(
            "GET", f"/profiles/{quote(remote_id, safe='')}", allow_not_found=True
        )
        if payload is None:
            return None
        try:
            return ProgressRecord.model_validate(payload)
        except ValueError as exc:
            raise TransientRemoteError(f"Remote profile payload is invalid: {exc}") from exc

    async def save_profile(self, profile: ProgressRecord) -> None:
        if not profile.remote_id:
            raise ValueError("Cannot save a profile that has no remote_id.")
        await self._request(
            "PUT",
            f"/profiles/{quote(profile.remote_id, safe='')}",
            json=profile.model_dump(mode="json"),
        )

    async def fetch_leaderboard(self) -> List[Item]:
        return self._expect_list(await self._request("GET", "/leaderboard"), "leaderboard")

    async def fetch_notifications(self) -> List[Item]:
        return self._expect_list(await self._request("GET", "/notifications"), "notifications")

    async def fetch_config(self) -> Item:
        payload = await self._request("GET", "/config")
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise TransientRemoteError("Remote config payload is not an object.")
        return payload

    async def save_config(self, config: Item) -> None:
        await self._request("PUT", "/config", json=config)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> Any:
        if not self.is_configured():
            raise ConfigurationError("Remote base URL and API key must be configured.")

        headers = {"Authorization": f"Bearer {self._api_key}", "Accept": "application/json"}
        url = f"{self._base_url}{path}"
        try:
            response = await self._get_client().request(method, url, headers=headers, json=json)
            if allow_not_found and response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransientRemoteError(f"{method} {path} failed: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransientRemoteError(f"{method} {path} returned invalid JSON: {exc}") from exc

    @staticmethod
    def _expect_list(payload: Any, label: str) -> List[Item]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TransientRemoteError(f"Remote {label} payload is not a list.")
        return payload


__all__ = ["HttpContentGateway", "Item", "RemoteContentGateway"]
