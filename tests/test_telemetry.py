import json

from smartbills.scraper import config
from smartbills.scraper.telemetry import RunTelemetry


def test_outcomes_are_summarised_per_voucher() -> None:
    telemetry = RunTelemetry("export")
    telemetry.extracted(0, "JV-A", 2)
    telemetry.skipped(1, "selection_trigger_missing", "JV-B")
    telemetry.skipped(2, "index_out_of_range")
    telemetry.failed(3, "JV-D", "detail_not_found", "voucher detail not found")

    path = telemetry.finalize({"start": 0, "end": 4})

    assert path.parent == config.RUNS_DIR
    report = json.loads(path.read_text(encoding="utf-8"))
    assert report["mode"] == "export"
    assert (report["start"], report["end"]) == (0, 4)
    assert report["summary"] == {
        "vouchers_ok": 1,
        "vouchers_skipped": 2,
        "vouchers_failed": 1,
        "items_total": 2,
    }
    assert report["entries"][2] == {
        "index": 2,
        "status": "skipped",
        "voucher": None,
        "items": 0,
        "reason": "index_out_of_range",
        "error": None,
    }
    assert report["entries"][3]["error"] == "voucher detail not found"
