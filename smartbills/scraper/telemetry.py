"""Per-run voucher outcomes written to ``RUNS_DIR`` as JSON."""

from __future__ import annotations

import json
import time
import uuid
from collections import Counter
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config

OK = "ok"
SKIPPED = "skipped"
FAILED = "failed"


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


@dataclass
class VoucherOutcome:
    index: int
    status: str
    voucher: Optional[str] = None
    items: int = 0
    reason: str = ""
    error: Optional[str] = None


class RunTelemetry:
    """Collect one outcome per listing index for a single pass or batch."""

    def __init__(self, mode: str) -> None:
        self.run_id = f"{_ts()}_{uuid.uuid4().hex[:8]}"
        self.mode = mode
        self.started_at = time.time()
        self.entries: List[VoucherOutcome] = []

    def extracted(self, index: int, voucher: str, items: int) -> None:
        self.entries.append(VoucherOutcome(index, OK, voucher, items=items))

    def skipped(self, index: int, reason: str, voucher: Optional[str] = None) -> None:
        self.entries.append(VoucherOutcome(index, SKIPPED, voucher, reason=reason))

    def failed(self, index: int, voucher: str, reason: str, error: str) -> None:
        self.entries.append(VoucherOutcome(index, FAILED, voucher, reason=reason, error=error))

    def summary(self) -> Dict[str, Any]:
        counts = Counter(entry.status for entry in self.entries)
        return {
            "vouchers_ok": counts[OK],
            "vouchers_skipped": counts[SKIPPED],
            "vouchers_failed": counts[FAILED],
            "items_total": sum(entry.items for entry in self.entries),
        }

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        payload = {
            "run_id": self.run_id,
            "mode": self.mode,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "summary": self.summary(),
            "entries": [asdict(entry) for entry in self.entries],
            **(extra or {}),
        }
        config.RUNS_DIR.mkdir(parents=True, exist_ok=True)
        path = config.RUNS_DIR / f"run_{self.run_id}.json"
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2, default=str)
        return path


__all__ = ["RunTelemetry", "VoucherOutcome"]
