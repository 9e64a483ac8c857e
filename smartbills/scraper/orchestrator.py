"""Drive voucher-by-voucher extraction with persisted, resumable batches.

A batched run is a cursor (:class:`~smartbills.scraper.state.RunState`) over
the bill listing plus the rows accumulated so far, both kept in a
:class:`~smartbills.scraper.store.DurableStore`. Each call to
:meth:`BatchOrchestrator.resume` processes at most one batch, merges its rows,
moves the cursor and tells the caller what to do next: reload the page and
resume again, stop until an operator resumes, or nothing (the run finalized).

Records are always processed in ascending index order, one at a time. The
orchestrator owns a single :class:`RunSession`; a start or resume issued while
one is open is ignored.
"""

from __future__ import annotations

import enum
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from . import config
from .browser import click_trigger
from .detail import DetailExpectation, resolve_detail_view
from .error_codes import (
    RECORD_SKIP_ERROR_CODES,
    ListingNotFound,
    ListingWaitTimeout,
    error_code_for,
)
from .export import pack_row, partial_filename, range_filename, write_export
from .frames import ListingFrame, find_listing_frame, wait_listing
from .items import LineItem, parse_line_items
from .listing import BillRecord, build_bill_index, find_selection_trigger
from .logging_utils import _scraper_event
from .restore import restore_listing
from .state import (
    RunState,
    append_rows,
    clear_all,
    clear_rows,
    load_rows,
    load_run_state,
    save_run_state,
)
from .store import DurableStore
from .telemetry import RunTelemetry
from .utils import log_line


class BatchOutcome(str, enum.Enum):
    BUSY = "busy"
    NOOP = "noop"
    RELOAD = "reload"
    HALTED = "halted"
    FINALIZED = "finalized"


@dataclass
class RunSession:
    """Handle for the one run allowed in flight per orchestrator."""

    kind: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    started_at: float = field(default_factory=time.time)


@dataclass
class BatchResult:
    outcome: BatchOutcome
    state: Optional[RunState] = None
    processed: int = 0
    rows_total: int = 0
    path: Optional[Path] = None


@dataclass
class ExportResult:
    start: int
    end: int
    rows: List[List[Any]]
    skipped: List[str]
    dry_run: bool
    path: Optional[Path] = None


class _RangeAborted(Exception):
    def __init__(self, index: int, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.index = index
        self.cause = cause


def download_partial(store: DurableStore) -> Path:
    """Write the rows accumulated so far without touching the run state."""

    rows = load_rows(store)
    path = write_export(rows, partial_filename(len(rows)))
    _scraper_event("export", step="partial", rows=len(rows), path=str(path))
    return path


def clear_state(store: DurableStore) -> None:
    """Forget the run state and rows; an in-flight batch is not interrupted."""

    clear_all(store)
    _scraper_event("state", step="cleared")


class BatchOrchestrator:
    def __init__(
        self,
        session: Any,
        store: DurableStore,
        *,
        inter_record_delay: Optional[float] = None,
    ) -> None:
        self.session = session
        self.store = store
        self.inter_record_delay = (
            config.INTER_RECORD_DELAY_SECONDS if inter_record_delay is None else inter_record_delay
        )
        self._active: Optional[RunSession] = None

    # ------------------------------------------------------------------
    # Session guard
    # ------------------------------------------------------------------

    @property
    def active_session(self) -> Optional[RunSession]:
        return self._active

    @contextmanager
    def _claim(self, kind: str) -> Iterator[Optional[RunSession]]:
        if self._active is not None:
            log_line(f"[RUN] Already running ({self._active.kind} {self._active.session_id}); ignoring {kind}")
            yield None
            return
        self._active = RunSession(kind)
        try:
            yield self._active
        finally:
            self._active = None

    # ------------------------------------------------------------------
    # Frame helpers
    # ------------------------------------------------------------------

    def locate_listing(self, timeout: Optional[float] = None) -> ListingFrame:
        return wait_listing(
            self.session.root,
            timeout,
            sleep=self.session.sleep,
            clock=self.session.clock,
        )

    def _initial_listing(self) -> Tuple[ListingFrame, List[BillRecord]]:
        try:
            listing = self.locate_listing()
        except ListingWaitTimeout as exc:
            raise ListingNotFound("Smart bill listing not found") from exc
        return listing, build_bill_index(listing)

    def process_record(
        self, listing: ListingFrame, index: int, record: BillRecord, total: int
    ) -> Tuple[ListingFrame, List[LineItem]]:
        """Click one voucher, parse its detail and bring the listing back.

        Returns the listing to use for the next record together with the
        parsed items.
        """

        if listing.node.is_detached():
            listing = find_listing_frame(self.session.root) or self.locate_listing()

        trigger = find_selection_trigger(listing, record.voucher_no)
        click_trigger(listing.node.handle, trigger)
        log_line(f"[RUN] ({index + 1}/{total}) clicked voucher {record.voucher_no}")

        view = resolve_detail_view(
            self.session.root,
            DetailExpectation.from_args(record.args),
            sleep=self.session.sleep,
            clock=self.session.clock,
        )
        items = parse_line_items(view)
        _scraper_event(
            "record",
            index=index,
            voucher=record.voucher_no,
            view=view.kind.value,
            path=view.label,
            items=len(items),
        )

        after = find_listing_frame(self.session.root)
        if after is None:
            after = restore_listing(self.session, view.path)
            log_line(f"[RUN] listing path after restore: {after.node.label}")

        self.session.sleep(self.inter_record_delay)
        return after, items

    def _process_range(
        self,
        listing: ListingFrame,
        records: Sequence[BillRecord],
        start: int,
        end: int,
        buffer: List[List[Any]],
        telemetry: RunTelemetry,
        skipped: Optional[List[str]] = None,
    ) -> None:
        for index in range(start, end):
            if index >= len(records):
                # The listing shrank since the run was planned.
                log_line(f"[RUN] MISS record index {index} (listing has {len(records)}), skipping")
                telemetry.skipped(index, "index_out_of_range")
                if skipped is not None:
                    skipped.append(f"#{index}")
                continue

            record = records[index]
            try:
                listing, items = self.process_record(listing, index, record, len(records))
            except Exception as exc:  # noqa: BLE001
                code = error_code_for(exc)
                if code in RECORD_SKIP_ERROR_CODES:
                    log_line(f"[RUN] MISS {record.voucher_no} ({code}) - skipping")
                    telemetry.skipped(index, code, record.voucher_no)
                    if skipped is not None:
                        skipped.append(record.voucher_no)
                    continue
                telemetry.failed(index, record.voucher_no, code, str(exc))
                raise _RangeAborted(index, exc) from exc

            buffer.extend(pack_row(record, item) for item in items)
            telemetry.extracted(index, record.voucher_no, len(items))

    # ------------------------------------------------------------------
    # Single-pass export
    # ------------------------------------------------------------------

    def export_range(
        self, start: int = 0, count: Optional[int] = None, dry_run: bool = False
    ) -> Optional[ExportResult]:
        """Extract ``count`` bills from ``start`` in one pass, without checkpoints."""

        with self._claim("export_range") as run:
            if run is None:
                return None

            listing, records = self._initial_listing()
            start = max(0, min(start, len(records)))
            end = len(records) if count is None else min(len(records), start + max(0, count))
            log_line(
                f"[RUN] Bills: {len(records)} | running [{start}..{end - 1}]"
                + (" (dry)" if dry_run else "")
            )

            telemetry = RunTelemetry("dry_run" if dry_run else "export")
            buffer: List[List[Any]] = []
            skipped: List[str] = []
            try:
                self._process_range(listing, records, start, end, buffer, telemetry, skipped)
            except _RangeAborted as aborted:
                log_line(f"[RUN] FATAL at index {aborted.index}: {aborted.cause}")
                telemetry.finalize({"start": start, "end": end, "error": str(aborted.cause)})
                raise aborted.cause

            result = ExportResult(start, end, buffer, skipped, dry_run)
            if dry_run:
                log_line(f"[RUN] DRY-RUN rows={len(buffer)} sample={buffer[:3]!r}")
            else:
                result.path = write_export(buffer, range_filename(start, end))
                log_line(f"[RUN] DONE rows={len(buffer)}")
            telemetry.finalize({"start": start, "end": end, "rows": len(buffer)})
            return result

    def export_all(self) -> Optional[ExportResult]:
        return self.export_range(0, None, False)

    # ------------------------------------------------------------------
    # Batched runs
    # ------------------------------------------------------------------

    def start_batched(
        self,
        start: int = 0,
        total: Optional[int] = None,
        batch_size: int = config.BATCH_SIZE_DEFAULT,
        reload_between: bool = config.RELOAD_BETWEEN_DEFAULT,
    ) -> BatchResult:
        """Plan a fresh batched run over ``total`` bills from ``start`` and run its first batch."""

        with self._claim("start_batched") as run:
            if run is None:
                return BatchResult(BatchOutcome.BUSY)

            _, records = self._initial_listing()
            start = max(0, min(start, len(records)))
            end = len(records) if total is None else min(len(records), start + max(0, total))
            state = RunState(
                active=True,
                start=start,
                next=start,
                end=end,
                batch_size=max(1, batch_size),
                reload_between=reload_between,
            )
            clear_rows(self.store)
            save_run_state(self.store, state)
            _scraper_event(
                "state",
                step="start_batched",
                bills=len(records),
                start=start,
                end=end,
                batch_size=state.batch_size,
                reload_between=reload_between,
            )
            return self._resume_claimed()

    def resume(self, kind: str = "resume") -> BatchResult:
        """Process the next batch of the persisted run, if one is active."""

        with self._claim(kind) as run:
            if run is None:
                return BatchResult(BatchOutcome.BUSY)
            return self._resume_claimed()

    def reactivate(self) -> Optional[RunState]:
        """Re-arm a run that halted on a failure so ``resume`` picks it up again."""

        state = load_run_state(self.store)
        if state is None or state.active:
            return state
        state.active = True
        state.last_error = None
        state.last_error_code = None
        save_run_state(self.store, state)
        _scraper_event("state", step="reactivated", next=state.next, end=state.end)
        return state

    def download_partial(self) -> Path:
        return download_partial(self.store)

    def clear_state(self) -> None:
        clear_state(self.store)

    def _resume_claimed(self) -> BatchResult:
        state = load_run_state(self.store)
        if state is None or not state.active:
            _scraper_event("state", step="resume_noop", has_state=state is not None)
            return BatchResult(BatchOutcome.NOOP, state)

        if state.done:
            return self._finalize(state, processed=0)

        batch_start = state.next
        batch_end = state.next_batch_end()
        telemetry = RunTelemetry("batch")
        buffer: List[List[Any]] = []
        _scraper_event("state", step="batch_begin", start=batch_start, end=batch_end, run_end=state.end)

        try:
            try:
                listing = self.locate_listing()
            except Exception as exc:  # noqa: BLE001
                raise _RangeAborted(batch_start, exc) from exc
            records = build_bill_index(listing)
            self._process_range(listing, records, batch_start, batch_end, buffer, telemetry)
        except _RangeAborted as aborted:
            self._fail(state, buffer, aborted.index, aborted.cause)
            telemetry.finalize({"start": batch_start, "end": batch_end, "error": str(aborted.cause)})
            raise aborted.cause

        rows_total = append_rows(self.store, buffer)
        state.advance(batch_end)
        save_run_state(self.store, state)
        telemetry.finalize({"start": batch_start, "end": batch_end, "rows": len(buffer)})
        _scraper_event(
            "state",
            step="batch_done",
            next=state.next,
            end=state.end,
            batch_rows=len(buffer),
            rows_total=rows_total,
        )

        processed = batch_end - batch_start
        if state.done:
            return self._finalize(state, processed=processed)
        if state.reload_between:
            return BatchResult(BatchOutcome.RELOAD, state, processed, rows_total)
        log_line(f"[RUN] Batch complete; {state.remaining} bills left. Resume manually to continue.")
        return BatchResult(BatchOutcome.HALTED, state, processed, rows_total)

    def _fail(self, state: RunState, buffer: List[List[Any]], index: int, exc: BaseException) -> None:
        code = error_code_for(exc)
        rows_total = append_rows(self.store, buffer) if buffer else len(load_rows(self.store))
        state.advance(max(state.next, min(index, state.end)))
        state.active = False
        state.last_error = str(exc)
        state.last_error_code = code
        save_run_state(self.store, state)
        _scraper_event(
            "error",
            phase="batch",
            error_code=code,
            error=str(exc),
            index=index,
            next=state.next,
            rows_total=rows_total,
        )
        self.session.screenshot(f"failure_{code}_{index}")

    def _finalize(self, state: RunState, *, processed: int) -> BatchResult:
        rows = load_rows(self.store)
        path = write_export(rows, range_filename(state.start, state.end))
        clear_all(self.store)
        _scraper_event("state", step="finalized", rows=len(rows), path=str(path))
        return BatchResult(BatchOutcome.FINALIZED, state, processed, len(rows), path)


__all__ = [
    "BatchOutcome",
    "BatchResult",
    "ExportResult",
    "RunSession",
    "BatchOrchestrator",
    "download_partial",
    "clear_state",
]
