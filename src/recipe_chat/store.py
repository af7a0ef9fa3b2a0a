"""Durable client-side conversation history (JSON on disk, thread-safe, atomic)."""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, List, Optional

from pydantic import TypeAdapter, ValidationError

from .types import UIMessage, generate_id

logger = logging.getLogger(__name__)

STORAGE_KEY = "recipe-chat-history"
DEFAULT_WELCOME = "Hi! Tell me what you feel like eating today and I'll put together a recipe for you 🍳"

Conversation = List[UIMessage]
_conversation_adapter = TypeAdapter(List[UIMessage])


class StoreNotHydratedError(RuntimeError):
    """Raised when saving before the persisted history has been read."""


# -----------------------------
# Helpers
# -----------------------------
def _safe_key(name: str) -> str:
    s = re.sub(r"[^\w.\-@]+", "_", name.strip() or "default")
    return s[:128]


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(path.parent)) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    os.replace(tmp_name, path)


# -----------------------------
# Key-value surface
# -----------------------------
class JsonFileStorage:
    """One JSON document per key under ``root``.

    ``get`` returns ``None`` when the key was never written. A document that
    cannot be parsed is moved aside to ``<key>.corrupt.json`` and also reads
    as ``None``.
    """

    def __init__(self, root: str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, key: str) -> Path:
        return self.root / f"{_safe_key(key)}.json"

    def get(self, key: str) -> Any:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Unreadable storage entry %s (%s); moving it aside", path, e)
            with self._lock:
                try:
                    path.replace(path.with_suffix(".corrupt.json"))
                except OSError:
                    logger.warning("Could not move corrupt entry %s aside", path)
            return None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            _atomic_write_text(self._path(key), json.dumps(value, ensure_ascii=False, indent=2))

    def delete(self, key: str) -> None:
        with self._lock:
            self._path(key).unlink(missing_ok=True)


# -----------------------------
# Conversation store
# -----------------------------
class ConversationStore:
    """Loads, saves and resets the single persisted conversation.

    The store refuses to ``save`` until ``load`` has run once so a default
    welcome conversation can never overwrite history that was not read yet.
    """

    def __init__(
        self,
        storage: JsonFileStorage,
        *,
        key: str = STORAGE_KEY,
        welcome_message: str = DEFAULT_WELCOME,
    ) -> None:
        self.storage = storage
        self.key = key
        self.welcome_message = welcome_message
        self.hydrated = False

    def welcome(self) -> Conversation:
        return [UIMessage(role="assistant", content=self.welcome_message)]

    def load(self) -> Conversation:
        try:
            conversation = self._read()
        finally:
            self.hydrated = True
        return conversation

    def save(self, conversation: Conversation) -> None:
        if not self.hydrated:
            raise StoreNotHydratedError("save() called before the conversation was loaded")
        self.storage.set(self.key, [m.model_dump(exclude_none=True) for m in conversation])

    def clear(self) -> Conversation:
        conversation = self.welcome()
        self.hydrated = True
        self.save(conversation)
        return conversation

    def _read(self) -> Conversation:
        raw = self.storage.get(self.key)
        if raw is None:
            return self.welcome()
        if not isinstance(raw, list) or not raw:
            logger.warning("Persisted conversation is not a non-empty list; starting fresh")
            return self.welcome()
        try:
            conversation = _conversation_adapter.validate_python(raw)
        except ValidationError as e:
            logger.warning("Persisted conversation has an incompatible shape (%d issues); starting fresh", e.error_count())
            return self.welcome()
        return _dedupe_ids(conversation)


def _dedupe_ids(conversation: Conversation) -> Conversation:
    """Keep the first message per id; later repeats get a fresh id."""
    seen = set()
    out: Conversation = []
    for m in conversation:
        if m.id in seen:
            logger.warning("Duplicate message id %s in persisted conversation; reassigning", m.id)
            m = m.model_copy(update={"id": generate_id()})
        seen.add(m.id)
        out.append(m)
    return out


def open_store(data_dir: str, key: str = STORAGE_KEY, welcome_message: Optional[str] = None) -> ConversationStore:
    return ConversationStore(
        JsonFileStorage(data_dir),
        key=key,
        welcome_message=welcome_message or DEFAULT_WELCOME,
    )
