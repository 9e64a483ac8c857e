"""Durable key-value stores that outlive the browser page.

Run state and accumulated rows must survive a page reload and a process
restart. Two interchangeable backends are provided: a single JSON document
written atomically, and a SQLite key/value table.
"""
from __future__ import annotations

import json
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from . import config
from .utils import log_line


class DurableStore(ABC):
    """Minimal get/set/delete interface over JSON-serialisable values."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError


class JsonFileStore(DurableStore):
    """All keys in one JSON object, replaced atomically on every write."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            log_line(f"[STATE] Failed to read {self.path}: {exc}")
            return {}
        return loaded if isinstance(loaded, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class SqliteStore(DurableStore):
    """Key/value rows in a local SQLite database."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.initialize_schema()

    def get_connection(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize_schema(self) -> None:
        conn = self.get_connection()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key         TEXT PRIMARY KEY,
                        value_json  TEXT NOT NULL,
                        updated_at  TEXT NOT NULL
                    );
                    """
                )
        finally:
            conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        conn = self.get_connection()
        try:
            row = conn.execute("SELECT value_json FROM kv_store WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return default
        try:
            return json.loads(row["value_json"])
        except json.JSONDecodeError as exc:
            log_line(f"[STATE] Corrupt value for {key!r} in {self.path}: {exc}")
            return default

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        now = datetime.utcnow().isoformat(timespec="seconds") + "Z"
        conn = self.get_connection()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value_json, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json = excluded.value_json,
                        updated_at = excluded.updated_at
                    """,
                    (key, payload, now),
                )
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = self.get_connection()
        try:
            with conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        finally:
            conn.close()


def open_store() -> DurableStore:
    """Return the configured store backend."""

    if config.use_sqlite_store():
        return SqliteStore(config.DB_PATH)
    return JsonFileStore(config.STATE_FILE)


__all__ = ["DurableStore", "JsonFileStore", "SqliteStore", "open_store"]
