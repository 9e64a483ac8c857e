from contextlib import contextmanager
from types import SimpleNamespace

import pytest

from smartbills.scraper import config, run
from smartbills.scraper.orchestrator import BatchOutcome, BatchResult
from smartbills.scraper.state import RunState, append_rows, load_run_state, save_run_state
from smartbills.scraper.store import JsonFileStore
from tests.fakes import Bill, FakeReport


def _factory(report: FakeReport):
    sessions = []

    @contextmanager
    def _open():
        session = report.session()
        sessions.append(session)
        yield session

    _open.sessions = sessions
    return _open


def _report() -> FakeReport:
    return FakeReport([Bill("JV-A", "2024061"), Bill("JV-B", "2024062"), Bill("JV-C", "2024063")])


class _StubOrchestrator:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.kinds = []

    def resume(self, kind="resume"):
        self.kinds.append(kind)
        return BatchResult(self.outcomes.pop(0))


def test_drive_reloads_until_finalized() -> None:
    orch = _StubOrchestrator([BatchOutcome.RELOAD, BatchOutcome.FINALIZED])
    session = SimpleNamespace(reloads=0)
    session.reload = lambda: setattr(session, "reloads", session.reloads + 1)

    result = run.drive_reloads(orch, session, BatchResult(BatchOutcome.RELOAD))

    assert result.outcome is BatchOutcome.FINALIZED
    assert session.reloads == 2
    assert orch.kinds == ["auto_resume", "auto_resume"]


def test_drive_reloads_respects_cycle_cap() -> None:
    orch = _StubOrchestrator([BatchOutcome.RELOAD] * 5)
    session = SimpleNamespace(reload=lambda: None)

    result = run.drive_reloads(orch, session, BatchResult(BatchOutcome.RELOAD), max_cycles=2)

    assert result.outcome is BatchOutcome.RELOAD
    assert len(orch.kinds) == 2


def test_drive_reloads_passes_through_halted() -> None:
    orch = _StubOrchestrator([])
    result = run.drive_reloads(orch, SimpleNamespace(), BatchResult(BatchOutcome.HALTED))

    assert result.outcome is BatchOutcome.HALTED


def test_run_command_start_completes_batched_run() -> None:
    report = _report()
    factory = _factory(report)

    summary = run.run_command(
        "start",
        entrypoint="tests",
        session_factory=factory,
        start=0,
        total=None,
        batch_size=1,
        reload_between=True,
    )

    assert summary["outcome"] == "finalized"
    assert summary["rows_total"] == 3
    assert summary["path"].endswith("flattrade-smart-bills_0-2.csv")
    assert summary["log_file"].endswith(".log")
    assert factory.sessions[0].reloads == 2
    assert run.is_busy() is False


def test_run_command_export_dry_run() -> None:
    report = _report()

    summary = run.run_command(
        "export", entrypoint="tests", session_factory=_factory(report), start=1, count=5, dry_run=True
    )

    assert summary["outcome"] == "dry_run"
    assert (summary["start"], summary["end"], summary["rows"]) == (1, 3, 2)
    assert summary["path"] is None


def test_run_command_resume_reactivates_failed_run() -> None:
    store = JsonFileStore(config.STATE_FILE)
    save_run_state(
        store,
        RunState(
            active=False,
            start=0,
            next=2,
            end=3,
            batch_size=5,
            reload_between=False,
            last_error="voucher detail not found",
            last_error_code="detail_not_found",
        ),
    )
    append_rows(store, [["x"], ["y"]])
    report = _report()

    summary = run.run_command(
        "resume", entrypoint="tests", session_factory=_factory(report), store=store, reactivate=True
    )

    assert summary["outcome"] == "finalized"
    assert summary["rows_total"] == 3
    assert report.clicked == ["JV-C"]


def test_run_command_refuses_when_busy() -> None:
    acquired = run._RUN_LOCK.acquire(blocking=False)
    assert acquired
    try:
        assert run.is_busy() is True
        with pytest.raises(run.RunnerBusy):
            run.run_command("export_all", entrypoint="tests", session_factory=_factory(_report()))
    finally:
        run._RUN_LOCK.release()


def test_run_command_releases_lock_on_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "STATE_BACKEND", "redis")

    with pytest.raises(ValueError):
        run.run_command("export_all", entrypoint="tests", session_factory=_factory(_report()))

    assert run.is_busy() is False


def test_store_commands_need_no_browser() -> None:
    store = JsonFileStore(config.STATE_FILE)
    save_run_state(store, RunState(active=True, start=0, next=1, end=3, batch_size=1, reload_between=True))
    append_rows(store, [["a"]])

    status = run.run_command("status", store=store)
    assert status["state"]["next"] == 1
    assert status["rows"] == 1
    assert status["busy"] is False

    partial = run.run_command("partial", store=store)
    assert partial["path"].endswith("flattrade-smart-bills_partial_1rows.csv")

    assert run.run_command("clear", store=store) == {"outcome": "cleared"}
    assert load_run_state(store) is None


def test_unknown_command_rejected() -> None:
    with pytest.raises(ValueError):
        run.run_command("explode")


def test_cli_parses_and_prints(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    calls = []

    def _fake_run_command(command, **params):
        calls.append((command, params))
        return {"outcome": "halted", "state": {"next": 2}}

    monkeypatch.setattr(run, "run_command", _fake_run_command)

    assert run.main(["start", "--start", "3", "--total", "10", "--batch-size", "4", "--no-reload-between"]) == 0
    assert calls == [("start", {"start": 3, "total": 10, "batch_size": 4, "reload_between": False})]
    out = capsys.readouterr().out
    assert "outcome: halted" in out
    assert "  next: 2" in out

    run.main(["export-all"])
    assert calls[-1] == ("export_all", {})

    run.main(["resume", "--reactivate"])
    assert calls[-1] == ("resume", {"reactivate": True})


def test_cli_exit_codes(monkeypatch: pytest.MonkeyPatch) -> None:
    def _busy(command, **params):
        raise run.RunnerBusy("a browser run is already in progress")

    monkeypatch.setattr(run, "run_command", _busy)
    with pytest.raises(SystemExit) as excinfo:
        run.main(["resume"])
    assert excinfo.value.code == 2

    from smartbills.scraper.error_codes import ListingNotFound

    def _missing(command, **params):
        raise ListingNotFound("Smart bill listing not found")

    monkeypatch.setattr(run, "run_command", _missing)
    with pytest.raises(SystemExit) as excinfo:
        run.main(["export"])
    assert excinfo.value.code == 1
