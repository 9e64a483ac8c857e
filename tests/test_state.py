from pathlib import Path

import pytest

from smartbills.scraper import config
from smartbills.scraper.state import (
    ROWS_KEY,
    RUN_STATE_KEY,
    RunState,
    append_rows,
    clear_all,
    load_rows,
    load_run_state,
    save_run_state,
)
from smartbills.scraper.store import JsonFileStore, SqliteStore, open_store


@pytest.fixture(params=["json", "sqlite"])
def store(request, tmp_path: Path):
    if request.param == "json":
        return JsonFileStore(tmp_path / "run_state.json")
    return SqliteStore(tmp_path / "smartbills.db")


def _state(**overrides) -> RunState:
    values = dict(active=True, start=0, next=0, end=5, batch_size=2, reload_between=True)
    values.update(overrides)
    return RunState(**values)


def test_store_get_set_delete(store) -> None:
    assert store.get("missing") is None
    assert store.get("missing", []) == []

    store.set("k", {"a": [1, "two"]})
    assert store.get("k") == {"a": [1, "two"]}

    store.set("k", "replaced")
    assert store.get("k") == "replaced"

    store.delete("k")
    store.delete("k")
    assert store.get("k") is None


def test_run_state_round_trip(store) -> None:
    state = _state(next=2)
    save_run_state(store, state)

    loaded = load_run_state(store)

    assert loaded == state
    assert loaded.updated_at is not None


def test_rows_append_and_clear(store) -> None:
    assert append_rows(store, [["a", 1.5]]) == 1
    assert append_rows(store, [["b", 2], ["c", 3]]) == 3
    assert load_rows(store) == [["a", 1.5], ["b", 2], ["c", 3]]

    save_run_state(store, _state())
    clear_all(store)

    assert load_rows(store) == []
    assert load_run_state(store) is None
    assert store.get(RUN_STATE_KEY) is None
    assert store.get(ROWS_KEY) is None


def test_state_survives_new_store_instance(tmp_path: Path) -> None:
    first = SqliteStore(tmp_path / "smartbills.db")
    save_run_state(first, _state(next=4))
    append_rows(first, [["x"]])

    second = SqliteStore(tmp_path / "smartbills.db")

    assert load_run_state(second).next == 4
    assert load_rows(second) == [["x"]]


def test_malformed_state_is_ignored(store) -> None:
    store.set(RUN_STATE_KEY, {"active": True, "start": 3, "next": 1, "end": 5, "batch_size": 2, "reload_between": True})
    assert load_run_state(store) is None

    store.set(RUN_STATE_KEY, {"active": True})
    assert load_run_state(store) is None


def test_json_store_tolerates_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "run_state.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)

    assert store.get(RUN_STATE_KEY) is None
    store.set("k", 1)
    assert store.get("k") == 1


@pytest.mark.parametrize(
    "overrides",
    [
        dict(start=-1),
        dict(start=3, next=2),
        dict(next=6),
        dict(batch_size=0),
    ],
)
def test_run_state_rejects_invalid_bounds(overrides) -> None:
    with pytest.raises(ValueError):
        _state(**overrides)


def test_run_state_cursor() -> None:
    state = _state(start=1, next=1, end=6, batch_size=2)

    assert state.next_batch_end() == 3
    state.advance(3)
    state.advance(5)
    assert state.remaining == 1
    assert state.next_batch_end() == 6
    state.advance(6)
    assert state.done

    with pytest.raises(ValueError):
        state.advance(4)
    with pytest.raises(ValueError):
        state.advance(7)


def test_from_dict_ignores_unknown_keys() -> None:
    data = _state().to_dict()
    data["legacy_field"] = "x"

    assert RunState.from_dict(data) == _state()


def test_open_store_follows_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "STATE_BACKEND", "json")
    assert isinstance(open_store(), JsonFileStore)

    monkeypatch.setattr(config, "STATE_BACKEND", "sqlite")
    store = open_store()
    assert isinstance(store, SqliteStore)
    assert store.path == config.DB_PATH
