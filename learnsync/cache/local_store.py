"""Namespaced key/value cache persisted through SQLAlchemy."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Type, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python
from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..db.base import Base
from ..db.models import LocalStoreEntryModel
from ..db.session import build_engine_from_settings, build_session_factory, session_scope
from ..errors import SerializationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _normalize_key(key: str) -> Optional[str]:
    normalized = key.strip() if isinstance(key, str) else ""
    if not normalized:
        logger.warning("Ignoring LocalStore access with an empty key")
        return None
    return normalized


def dumps(value: Any) -> str:
    """Serialize ``value`` deterministically so equal values give equal bytes."""
    return json.dumps(
        to_jsonable_python(value),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )


class LocalStore:
    """Synchronous cache that never raises on reads or writes.

    Every entry is scoped to ``namespace`` so several stores (or unrelated host
    data) can share one database file without colliding.
    """

    def __init__(self, engine: Engine, namespace: str) -> None:
        if not namespace.strip():
            raise ValueError("LocalStore namespace cannot be empty.")
        self._engine = engine
        self._namespace = namespace.strip()
        self._session_factory = build_session_factory(engine)
        Base.metadata.create_all(engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalStore":
        return cls(build_engine_from_settings(settings), settings.storage_namespace)

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def engine(self) -> Engine:
        return self._engine

    def raw(self, key: str) -> Optional[str]:
        normalized = _normalize_key(key)
        if normalized is None:
            return None
        try:
            with session_scope(self._session_factory, commit=False) as session:
                return session.execute(
                    select(LocalStoreEntryModel.value).where(
                        LocalStoreEntryModel.namespace == self._namespace,
                        LocalStoreEntryModel.key == normalized,
                    )
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.warning("LocalStore read failed for %s/%s: %s", self._namespace, normalized, exc)
            return None

    def get(self, key: str, default: T, *, model: Optional[Type[Any]] = None) -> T:
        payload = self.raw(key)
        if payload is None:
            return default
        try:
            return self._decode(payload, model)
        except SerializationError as exc:
            logger.warning("Discarding cached %s/%s: %s", self._namespace, key, exc)
            return default

    def contains(self, key: str) -> bool:
        return self.raw(key) is not None

    def set(self, key: str, value: Any) -> None:
        normalized = _normalize_key(key)
        if normalized is None:
            return
        try:
            payload = dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("LocalStore could not serialize %s/%s: %s", self._namespace, normalized, exc)
            return
        try:
            with session_scope(self._session_factory) as session:
                entry = session.execute(
                    select(LocalStoreEntryModel).where(
                        LocalStoreEntryModel.namespace == self._namespace,
                        LocalStoreEntryModel.key == normalized,
                    )
                ).scalar_one_or_none()
                if entry is None:
                    session.add(
                        LocalStoreEntryModel(namespace=self._namespace, key=normalized, value=payload)
                    )
                elif entry.value != payload:
                    entry.value = payload
                    entry.updated_at = datetime.now(timezone.utc)
        except SQLAlchemyError as exc:
            logger.warning("LocalStore write failed for %s/%s: %s", self._namespace, normalized, exc)

    def remove(self, key: str) -> None:
        normalized = _normalize_key(key)
        if normalized is None:
            return
        try:
            with session_scope(self._session_factory) as session:
                session.execute(
                    delete(LocalStoreEntryModel).where(
                        LocalStoreEntryModel.namespace == self._namespace,
                        LocalStoreEntryModel.key == normalized,
                    )
                )
        except SQLAlchemyError as exc:
            logger.warning("LocalStore remove failed for %s/%s: %s", self._namespace, normalized, exc)

    def keys(self) -> List[str]:
        try:
            with session_scope(self._session_factory, commit=False) as session:
                rows = session.execute(
                    select(LocalStoreEntryModel.key)
                    .where(LocalStoreEntryModel.namespace == self._namespace)
                    .order_by(LocalStoreEntryModel.key)
                ).scalars()
                return list(rows)
        except SQLAlchemyError as exc:
            logger.warning("LocalStore key listing failed for %s: %s", self._namespace, exc)
            return []

    def clear(self) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.execute(
                    delete(LocalStoreEntryModel).where(LocalStoreEntryModel.namespace == self._namespace)
                )
        except SQLAlchemyError as exc:
            logger.warning("LocalStore clear failed for %s: %s", self._namespace, exc)

    @staticmethod
    def _decode(payload: str, model: Optional[Type[Any]]) -> Any:
        try:
            value = json.loads(payload)
        except ValueError as exc:
            raise SerializationError(f"corrupt JSON payload: {exc}") from exc
        if model is None:
            return value
        try:
            return TypeAdapter(model).validate_python(value)
        except ValidationError as exc:
            raise SerializationError(f"payload does not match {model!r}: {exc}") from exc


__all__ = ["LocalStore", "dumps"]
