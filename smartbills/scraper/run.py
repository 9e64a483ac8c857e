"""Runner for the Smart report bill extractor.

Workflow for a batched run:

- Open (or attach to) the browser showing the Smart report.
- ``start``: index the bill listing, persist a fresh run state, process the
  first batch.
- After each batch with reload enabled, reload the page once the state write
  has returned and auto-resume from the persisted cursor.
- The last batch writes ``flattrade-smart-bills_<start>-<end>.csv`` and clears
  the persisted state.

Wired to the CLI below and to the Flask control panel via ``run_command``.
"""

from __future__ import annotations

import argparse
import threading
from typing import Any, Callable, Dict, List, Optional

from . import config
from .browser import open_session
from .config_validation import Entrypoint, validate_runtime_config
from .error_codes import SmartBillsError, error_code_for
from .logging_utils import _scraper_event
from .orchestrator import (
    BatchOrchestrator,
    BatchOutcome,
    BatchResult,
    ExportResult,
    clear_state,
    download_partial,
)
from .state import load_rows, load_run_state
from .store import DurableStore, open_store
from .utils import ensure_dirs, log_line, setup_run_logger

BROWSER_COMMANDS = ("export", "export_all", "start", "resume")
STORE_COMMANDS = ("partial", "clear", "status")

_RUN_LOCK = threading.Lock()


class RunnerBusy(RuntimeError):
    """Another browser run is already in progress in this process."""


def is_busy() -> bool:
    return _RUN_LOCK.locked()


def on_page_load(orchestrator: BatchOrchestrator) -> BatchResult:
    """Auto-resume hook run after every reload of the report page."""

    return orchestrator.resume(kind="auto_resume")


def drive_reloads(
    orchestrator: BatchOrchestrator,
    session: Any,
    result: BatchResult,
    *,
    max_cycles: Optional[int] = None,
) -> BatchResult:
    """Reload and auto-resume until the run halts, finalizes or fails."""

    max_cycles = config.MAX_RELOAD_CYCLES if max_cycles is None else max_cycles
    cycles = 0
    while result.outcome is BatchOutcome.RELOAD:
        if cycles >= max_cycles:
            log_line(f"[RUN] Reload cycle cap ({max_cycles}) reached; resume manually to continue.")
            break
        cycles += 1
        session.reload()
        result = on_page_load(orchestrator)
    return result


def _summarise(result: Any) -> Dict[str, Any]:
    if result is None:
        return {"outcome": BatchOutcome.BUSY.value}
    if isinstance(result, BatchResult):
        return {
            "outcome": result.outcome.value,
            "state": result.state.to_dict() if result.state else None,
            "processed": result.processed,
            "rows_total": result.rows_total,
            "path": str(result.path) if result.path else None,
        }
    if isinstance(result, ExportResult):
        return {
            "outcome": "dry_run" if result.dry_run else "exported",
            "start": result.start,
            "end": result.end,
            "rows": len(result.rows),
            "skipped": list(result.skipped),
            "path": str(result.path) if result.path else None,
        }
    return {"outcome": "ok", "value": result}


def _dispatch(orchestrator: BatchOrchestrator, command: str, params: Dict[str, Any]) -> Any:
    if command == "export":
        return orchestrator.export_range(
            int(params.get("start") or 0),
            params.get("count"),
            bool(params.get("dry_run")),
        )
    if command == "export_all":
        return orchestrator.export_all()
    if command == "start":
        return orchestrator.start_batched(
            int(params.get("start") or 0),
            params.get("total"),
            int(params.get("batch_size") or config.BATCH_SIZE_DEFAULT),
            bool(params.get("reload_between", config.RELOAD_BETWEEN_DEFAULT)),
        )
    if command == "resume":
        if params.get("reactivate"):
            orchestrator.reactivate()
        return orchestrator.resume()
    raise ValueError(f"unknown browser command: {command!r}")


def run_store_command(command: str, store: Optional[DurableStore] = None) -> Dict[str, Any]:
    """Commands that only touch persisted state and never open a browser."""

    store = store or open_store()
    if command == "partial":
        path = download_partial(store)
        return {"outcome": "exported", "path": str(path), "rows": len(load_rows(store))}
    if command == "clear":
        clear_state(store)
        return {"outcome": "cleared"}
    if command == "status":
        state = load_run_state(store)
        return {
            "outcome": "status",
            "state": state.to_dict() if state else None,
            "rows": len(load_rows(store)),
            "busy": is_busy(),
        }
    raise ValueError(f"unknown store command: {command!r}")


def run_command(
    command: str,
    *,
    entrypoint: Entrypoint = "cli",
    session_factory: Callable[[], Any] = open_session,
    store: Optional[DurableStore] = None,
    **params: Any,
) -> Dict[str, Any]:
    """Run one control-surface command end to end and return a summary."""

    ensure_dirs()
    if command in STORE_COMMANDS:
        return run_store_command(command, store)
    if command not in BROWSER_COMMANDS:
        raise ValueError(f"unknown command: {command!r}")

    if not _RUN_LOCK.acquire(blocking=False):
        raise RunnerBusy("a browser run is already in progress")
    try:
        log_path = setup_run_logger()
        validate_runtime_config(entrypoint)
        store = store or open_store()
        _scraper_event("run", step="begin", command=command, entrypoint=entrypoint, params=params)
        with session_factory() as session:
            orchestrator = BatchOrchestrator(session, store)
            try:
                result = _dispatch(orchestrator, command, params)
                if isinstance(result, BatchResult):
                    result = drive_reloads(orchestrator, session, result)
            except Exception as exc:  # noqa: BLE001
                log_line(f"[RUN] FATAL {error_code_for(exc)}: {exc}")
                raise
        summary = _summarise(result)
        summary["log_file"] = str(log_path)
        _scraper_event("run", step="end", command=command, outcome=summary.get("outcome"))
        return summary
    finally:
        _RUN_LOCK.release()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export Flattrade Smart report bills to CSV")
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Single pass over [start, start+count)")
    export.add_argument("--start", type=int, default=0)
    export.add_argument("--count", type=int, default=None)
    export.add_argument("--dry-run", action="store_true")

    sub.add_parser("export-all", help="Single pass over every bill")

    start = sub.add_parser("start", help="Begin a checkpointed batched run")
    start.add_argument("--start", type=int, default=0)
    start.add_argument("--total", type=int, default=None)
    start.add_argument("--batch-size", type=int, default=config.BATCH_SIZE_DEFAULT)
    start.add_argument(
        "--reload-between",
        action=argparse.BooleanOptionalAction,
        default=config.RELOAD_BETWEEN_DEFAULT,
        help="Reload the page and auto-resume after each batch",
    )

    resume = sub.add_parser("resume", help="Process the next batch of the persisted run")
    resume.add_argument(
        "--reactivate",
        action="store_true",
        help="Re-arm a run that halted on a failure before resuming",
    )

    sub.add_parser("partial", help="Write the rows accumulated so far")
    sub.add_parser("clear", help="Clear persisted run state and rows")
    sub.add_parser("status", help="Print the persisted run state")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    command = args.command.replace("-", "_")

    params = {k: v for k, v in vars(args).items() if k != "command"}
    try:
        summary = run_command(command, **params)
    except RunnerBusy as exc:
        parser.exit(2, f"{exc}\n")
    except SmartBillsError as exc:
        parser.exit(1, f"{exc.error_code}: {exc}\n")

    for key, value in summary.items():
        if isinstance(value, dict):
            print(f"{key}:")
            for inner_key, inner_value in value.items():
                print(f"  {inner_key}: {inner_value}")
        else:
            print(f"{key}: {value}")
    return 0


__all__ = [
    "RunnerBusy",
    "is_busy",
    "on_page_load",
    "drive_reloads",
    "run_command",
    "run_store_command",
    "main",
]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
