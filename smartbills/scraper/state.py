"""Helpers for persisting and restoring batch checkpoints."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .store import DurableStore
from .utils import log_line

RUN_STATE_KEY = "run_state"
ROWS_KEY = "rows"


@dataclass
class RunState:
    """Cursor over the half-open record range ``[start, end)``."""

    active: bool
    start: int
    next: int
    end: int
    batch_size: int
    reload_between: bool
    updated_at: Optional[str] = None
    last_error: Optional[str] = None
    last_error_code: Optional[str] = None

    def __post_init__(self) -> None:
        if not (0 <= self.start <= self.next <= self.end):
            raise ValueError(
                f"run state out of bounds: start={self.start} next={self.next} end={self.end}"
            )
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")

    @property
    def done(self) -> bool:
        return self.next >= self.end

    @property
    def remaining(self) -> int:
        return max(0, self.end - self.next)

    def next_batch_end(self) -> int:
        """Exclusive end index of the batch starting at ``next``."""

        return self.next + min(self.batch_size, self.remaining)

    def advance(self, next_index: int) -> None:
        if next_index < self.next or next_index > self.end:
            raise ValueError(
                f"cursor may only move forward within [{self.next}, {self.end}], got {next_index}"
            )
        self.next = next_index

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunState":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def load_run_state(store: DurableStore) -> Optional[RunState]:
    """Load the persisted run state if present and well-formed."""

    raw = store.get(RUN_STATE_KEY)
    if not raw:
        return None
    try:
        return RunState.from_dict(raw)
    except (TypeError, ValueError) as exc:
        log_line(f"[STATE] Ignoring malformed run state: {exc}")
        return None


def save_run_state(store: DurableStore, state: RunState) -> None:
    """Persist ``state``; returns only once the write is durable."""

    state.updated_at = datetime.utcnow().isoformat(timespec="seconds") + "Z"
    store.set(RUN_STATE_KEY, state.to_dict())


def clear_run_state(store: DurableStore) -> None:
    store.delete(RUN_STATE_KEY)


def load_rows(store: DurableStore) -> List[List[Any]]:
    rows = store.get(ROWS_KEY) or []
    return [list(row) for row in rows if isinstance(row, (list, tuple))]


def append_rows(store: DurableStore, new_rows: Sequence[Sequence[Any]]) -> int:
    """Append ``new_rows`` to the persisted rows; returns the new total."""

    rows = load_rows(store)
    rows.extend(list(row) for row in new_rows)
    store.set(ROWS_KEY, rows)
    return len(rows)


def clear_rows(store: DurableStore) -> None:
    store.delete(ROWS_KEY)


def clear_all(store: DurableStore) -> None:
    """Remove run state and rows so nothing auto-resumes."""

    clear_run_state(store)
    clear_rows(store)


__all__ = [
    "RUN_STATE_KEY",
    "ROWS_KEY",
    "RunState",
    "load_run_state",
    "save_run_state",
    "clear_run_state",
    "load_rows",
    "append_rows",
    "clear_rows",
    "clear_all",
]
