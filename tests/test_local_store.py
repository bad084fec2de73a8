"""LocalStore persistence and failure tolerance."""

from __future__ import annotations

from sqlalchemy import update

from learnsync.cache import LocalStore, dumps
from learnsync.db import build_session_factory, session_scope
from learnsync.db.models import LocalStoreEntryModel
from learnsync.progress import ProgressRecord


def _corrupt(store: LocalStore, key: str, payload: str) -> None:
    factory = build_session_factory(store.engine)
    with session_scope(factory) as session:
        session.execute(
            update(LocalStoreEntryModel)
            .where(LocalStoreEntryModel.namespace == store.namespace, LocalStoreEntryModel.key == key)
            .values(value=payload)
        )


def test_missing_key_returns_default(store: LocalStore) -> None:
    assert store.get("courseModules", []) == []
    assert store.contains("courseModules") is False


def test_set_then_get_round_trips_json(store: LocalStore) -> None:
    store.set("courseModules", [{"id": "m1", "lessons": [{"id": "l1"}]}])

    assert store.get("courseModules", []) == [{"id": "m1", "lessons": [{"id": "l1"}]}]
    assert store.keys() == ["courseModules"]


def test_equal_values_serialize_to_identical_bytes(store: LocalStore) -> None:
    store.set("appConfig", {"b": 1, "a": 2})
    first = store.raw("appConfig")
    store.set("appConfig", {"a": 2, "b": 1})

    assert store.raw("appConfig") == first
    assert dumps({"b": 1, "a": 2}) == '{"a":2,"b":1}'


def test_corrupt_payload_falls_back_to_default(store: LocalStore, caplog) -> None:
    store.set("materials", [{"id": "x"}])
    _corrupt(store, "materials", "{not json")

    with caplog.at_level("WARNING", logger="learnsync.cache.local_store"):
        assert store.get("materials", ["fallback"]) == ["fallback"]
    assert "Discarding cached" in caplog.text


def test_model_validation_failure_returns_default(store: LocalStore) -> None:
    store.set("progress", {"xp": -5})

    assert store.get("progress", None, model=ProgressRecord) is None


def test_model_decoding_restores_progress(store: LocalStore) -> None:
    record = ProgressRecord(name="Ada", xp=2500)
    store.set("progress", record)

    restored = store.get("progress", None, model=ProgressRecord)
    assert restored == record
    assert restored.level == 3


def test_overwriting_corrupt_entry_repairs_it(store: LocalStore) -> None:
    store.set("events", [])
    _corrupt(store, "events", "garbage")
    store.set("events", [{"id": "e1"}])

    assert store.get("events", []) == [{"id": "e1"}]


def test_remove_is_idempotent(store: LocalStore) -> None:
    store.set("streams", [{"id": "s1"}])
    store.remove("streams")
    store.remove("streams")

    assert store.get("streams", None) is None


def test_namespaces_are_isolated(engine) -> None:
    first = LocalStore(engine, "tab-a")
    second = LocalStore(engine, "tab-b")
    first.set("progress", {"xp": 10})
    second.set("progress", {"xp": 20})
    first.clear()

    assert first.get("progress", None) is None
    assert second.get("progress", None) == {"xp": 20}


def test_empty_key_is_ignored(store: LocalStore) -> None:
    store.set("  ", {"x": 1})

    assert store.keys() == []
    assert store.get("", "default") == "default"


def test_unserializable_value_is_logged_not_raised(store: LocalStore, caplog) -> None:
    with caplog.at_level("WARNING", logger="learnsync.cache.local_store"):
        store.set("scenarios", object())

    assert store.contains("scenarios") is False
    assert "could not serialize" in caplog.text


def test_file_database_survives_reopen(tmp_path) -> None:
    from learnsync.db import build_engine

    url = f"sqlite:///{tmp_path / 'cache.db'}"
    engine = build_engine(url)
    LocalStore(engine, "app").set("progress", {"xp": 42})
    engine.dispose()

    reopened = build_engine(url)
    try:
        assert LocalStore(reopened, "app").get("progress", None) == {"xp": 42}
    finally:
        reopened.dispose()
