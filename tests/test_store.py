from __future__ import annotations

import json
from pathlib import Path

import pytest

from recipe_chat.store import (
    STORAGE_KEY,
    ConversationStore,
    JsonFileStorage,
    StoreNotHydratedError,
)
from recipe_chat.types import ChatUsage, UIMessage


def _store(root: Path) -> ConversationStore:
    return ConversationStore(JsonFileStorage(str(root)), welcome_message="welcome!")


def _write_raw(root: Path, text: str) -> Path:
    path = root / f"{STORAGE_KEY}.json"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_missing_returns_welcome(tmp_data_dir: Path):
    conv = _store(tmp_data_dir).load()
    assert len(conv) == 1
    assert conv[0].role == "assistant"
    assert conv[0].content == "welcome!"


def test_load_number_instead_of_list_returns_welcome(tmp_data_dir: Path):
    _write_raw(tmp_data_dir, "42")
    conv = _store(tmp_data_dir).load()
    assert [m.content for m in conv] == ["welcome!"]


def test_load_empty_list_returns_welcome(tmp_data_dir: Path):
    _write_raw(tmp_data_dir, "[]")
    assert len(_store(tmp_data_dir).load()) == 1


def test_load_corrupt_json_moves_file_aside(tmp_data_dir: Path):
    path = _write_raw(tmp_data_dir, "{not json")
    conv = _store(tmp_data_dir).load()
    assert len(conv) == 1
    assert not path.exists()
    assert (tmp_data_dir / f"{STORAGE_KEY}.corrupt.json").exists()


def test_load_incompatible_shape_returns_welcome(tmp_data_dir: Path):
    _write_raw(tmp_data_dir, json.dumps([{"id": "1", "role": "robot", "content": "beep"}]))
    assert [m.content for m in _store(tmp_data_dir).load()] == ["welcome!"]


def test_load_duplicate_ids_keeps_history_with_fresh_ids(tmp_data_dir: Path):
    raw = [
        {"id": "x", "role": "user", "content": "a"},
        {"id": "x", "role": "assistant", "content": "b"},
        {"id": "y", "role": "user", "content": "c"},
    ]
    _write_raw(tmp_data_dir, json.dumps(raw))
    conv = _store(tmp_data_dir).load()
    assert [m.content for m in conv] == ["a", "b", "c"]
    assert conv[0].id == "x"
    assert conv[2].id == "y"
    assert len({m.id for m in conv}) == 3


def test_save_before_load_raises(tmp_data_dir: Path):
    store = _store(tmp_data_dir)
    with pytest.raises(StoreNotHydratedError):
        store.save([UIMessage(role="user", content="hi")])


def test_save_then_load_roundtrip(tmp_data_dir: Path):
    store = _store(tmp_data_dir)
    store.load()
    conv = [
        UIMessage(id="u1", role="user", content="something spicy"),
        UIMessage(id="r1", role="assistant", content="Mapo tofu", usage=ChatUsage(inputTokens=3, totalTokens=9)),
    ]
    store.save(conv)

    loaded = _store(tmp_data_dir).load()
    assert loaded == conv
    persisted = json.loads((tmp_data_dir / f"{STORAGE_KEY}.json").read_text(encoding="utf-8"))
    assert persisted[1]["usage"] == {"inputTokens": 3, "totalTokens": 9}
    assert "usage" not in persisted[0]


def test_save_of_load_is_idempotent(tmp_data_dir: Path):
    store = _store(tmp_data_dir)
    store.load()
    store.save([UIMessage(id="a", role="user", content="hi"), UIMessage(id="b", role="assistant", content="hey")])

    first = _store(tmp_data_dir)
    loaded = first.load()
    first.save(loaded)
    assert _store(tmp_data_dir).load() == loaded


def test_welcome_persisted_after_first_load_is_stable(tmp_data_dir: Path):
    store = _store(tmp_data_dir)
    welcome = store.load()
    store.save(welcome)
    assert _store(tmp_data_dir).load() == welcome


def test_clear_resets_to_fresh_welcome(tmp_data_dir: Path):
    store = _store(tmp_data_dir)
    store.load()
    store.save([UIMessage(role="user", content=f"m{i}") for i in range(5)])

    first = store.clear()
    second = store.clear()
    assert len(first) == 1 and first[0].role == "assistant"
    assert first[0].id != second[0].id
    assert _store(tmp_data_dir).load() == second


def test_storage_keys_are_filesystem_safe(tmp_data_dir: Path):
    storage = JsonFileStorage(str(tmp_data_dir))
    storage.set("../odd key/..", {"a": 1})
    assert storage.get("../odd key/..") == {"a": 1}
    assert all(p.parent == tmp_data_dir for p in tmp_data_dir.iterdir())
