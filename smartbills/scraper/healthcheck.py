from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from . import config
from .config_validation import validate_runtime_config
from .logging_utils import _scraper_event
from .state import RUN_STATE_KEY, load_run_state
from .store import open_store
from .utils import ensure_dirs, log_line


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def run_health_checks(entrypoint: str = "cli") -> HealthResult:
    checks: dict[str, dict[str, Any]] = {}

    try:
        validate_runtime_config(entrypoint or "cli")
        checks["config"] = {"ok": True}
    except ValueError as exc:
        checks["config"] = {"ok": False, "error": str(exc)}

    ensure_dirs()
    checks["filesystem"] = {
        "ok": os.access(config.DATA_DIR, os.W_OK) and os.access(config.EXPORTS_DIR, os.W_OK),
        "data_dir": str(config.DATA_DIR),
        "exports_dir": str(config.EXPORTS_DIR),
    }

    try:
        store = open_store()
        raw = store.get(RUN_STATE_KEY)
        state = load_run_state(store)
        checks["store"] = {
            "ok": raw is None or state is not None,
            "backend": config.STATE_BACKEND,
            "active_run": bool(state and state.active),
        }
        if raw is not None and state is None:
            checks["store"]["error"] = "persisted run state is malformed"
    except Exception as exc:  # noqa: BLE001
        checks["store"] = {"ok": False, "error": str(exc)}

    overall_ok = all(check.get("ok", False) for check in checks.values())

    _scraper_event(
        "state" if overall_ok else "error",
        phase="health",
        context="healthcheck",
        ok=overall_ok,
        checks=checks,
    )

    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        status = "OK" if info.get("ok") else "FAIL"
        log_line(f"[HEALTH] {name}: {status} {info}")
    raise SystemExit(0 if result.ok else 1)
