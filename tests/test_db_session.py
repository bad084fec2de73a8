from __future__ import annotations

import logging

import pytest
from sqlalchemy import func, select

from learnsync.db import Base, LocalStoreEntryModel, build_engine, build_session_factory, session_scope
from learnsync.logging_config import configure_logging


def test_session_scope_rolls_back_on_error() -> None:
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    factory = build_session_factory(engine)

    with pytest.raises(RuntimeError):
        with session_scope(factory) as session:
            session.add(LocalStoreEntryModel(namespace="ns", key="k", value="1"))
            session.flush()
            raise RuntimeError("abort")

    with session_scope(factory, commit=False) as session:
        assert session.execute(select(func.count()).select_from(LocalStoreEntryModel)).scalar_one() == 0
    engine.dispose()


@pytest.fixture
def _restore_loggers():
    names = ("learnsync", "httpx", "httpcore")
    saved = {
        name: (logging.getLogger(name).level, logging.getLogger(name).propagate, list(logging.getLogger(name).handlers))
        for name in names
    }
    yield
    for name, (level, propagate, handlers) in saved.items():
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.propagate = propagate
        logger.handlers = handlers


def test_configure_logging_honours_env_flags(monkeypatch, _restore_loggers) -> None:
    monkeypatch.setenv("LEARNSYNC_LOG_LEVEL", "warning")
    monkeypatch.setenv("LEARNSYNC_DEBUG_HTTP", "1")

    configure_logging()

    assert logging.getLogger("learnsync").level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.DEBUG
