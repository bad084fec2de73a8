"""Engine and session helpers for the local SQLite-backed cache."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional, Protocol

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings


class SessionManager(Protocol):
    """Protocol describing objects that can provide SQLAlchemy sessions."""

    def __call__(self) -> Session:  # pragma: no cover - protocol definition
        ...


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    kwargs: dict[str, object] = {
        "echo": echo,
        "future": True,
        "pool_pre_ping": True,
    }

    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every checkout sees an empty database.
            kwargs["poolclass"] = StaticPool

    return create_engine(database_url, **kwargs)


def build_engine_from_settings(settings: Settings) -> Engine:
    return build_engine(settings.local_database_url, echo=settings.local_database_echo)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


@contextmanager
def session_scope(
    factory: SessionManager, *, commit: bool = True
) -> Generator[Session, None, None]:
    session = factory()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine(engine: Optional[Engine]) -> None:
    if engine is not None:
        engine.dispose()


__all__ = [
    "SessionManager",
    "build_engine",
    "build_engine_from_settings",
    "build_session_factory",
    "dispose_engine",
    "session_scope",
]
