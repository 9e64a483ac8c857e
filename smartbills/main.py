from __future__ import annotations

import os
import threading
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request, send_file

from smartbills.scraper import config, run
from smartbills.scraper.config_validation import validate_runtime_config
from smartbills.scraper.healthcheck import run_health_checks
from smartbills.scraper.logging_utils import _scraper_event
from smartbills.scraper.utils import ensure_dirs, get_current_log_path, log_line

app = Flask(__name__)

# Initialise storage paths on import so WSGI entrypoints also have the
# expected layout ready.
ensure_dirs()


def _payload() -> Dict[str, Any]:
    """Merge a JSON body and form fields into one parameter mapping."""

    data: Dict[str, Any] = dict(request.form.items())
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        data.update(body)
    return data


def _int_param(data: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    value = data.get(key)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer") from None


def _bool_param(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _launch(command: str, **params: Any) -> Response:
    """Start ``command`` on a daemon thread unless a run is already going."""

    if run.is_busy():
        return jsonify({"ok": False, "error": "busy", "command": command}), 409

    try:
        validate_runtime_config("ui")
    except ValueError as exc:
        return jsonify({"ok": False, "error": "config_invalid", "details": str(exc)}), 400

    def _run() -> None:
        with app.app_context():
            try:
                summary = run.run_command(command, entrypoint="ui", **params)
                app.config["LAST_SUMMARY"] = summary
                app.config["LAST_ERROR"] = None
                app.config["CURRENT_LOG_FILE"] = summary.get("log_file")
            except run.RunnerBusy as exc:
                log_line(f"Run thread skipped: {exc}")
            except Exception as exc:  # noqa: BLE001
                app.config["LAST_ERROR"] = {"command": command, "error": str(exc)}
                log_line(f"Run thread failed: {exc}")

    _scraper_event("ui", step="launch", command=command, params=params)
    threading.Thread(target=_run, daemon=True).start()
    return jsonify({"ok": True, "started": command, "params": params}), 202


@app.get("/")
def index() -> Response:
    """Return the control panel overview: run state, latest exports, last summary."""

    status = run.run_store_command("status")
    exports = sorted(
        (p for p in config.EXPORTS_DIR.glob("*.csv") if p.is_file()),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    return jsonify(
        {
            "ok": True,
            "listing_url": config.LISTING_URL,
            "status": status,
            "exports": [p.name for p in exports],
            "last_summary": app.config.get("LAST_SUMMARY"),
            "last_error": app.config.get("LAST_ERROR"),
            "log_file": str(get_current_log_path()),
        }
    )


@app.post("/export")
def export_range() -> Response:
    data = _payload()
    try:
        start = _int_param(data, "start", 0)
        count = _int_param(data, "count", None)
    except ValueError as exc:
        return jsonify({"ok": False, "error": "invalid_params", "details": str(exc)}), 400
    return _launch("export", start=start, count=count, dry_run=_bool_param(data, "dry_run", False))


@app.post("/export/all")
def export_all() -> Response:
    return _launch("export_all")


@app.post("/batch/start")
def batch_start() -> Response:
    data = _payload()
    try:
        start = _int_param(data, "start", 0)
        total = _int_param(data, "total", None)
        batch_size = _int_param(data, "batch_size", config.BATCH_SIZE_DEFAULT)
    except ValueError as exc:
        return jsonify({"ok": False, "error": "invalid_params", "details": str(exc)}), 400
    if batch_size is None or batch_size < 1:
        return jsonify({"ok": False, "error": "invalid_params", "details": "batch_size must be >= 1"}), 400
    return _launch(
        "start",
        start=start,
        total=total,
        batch_size=batch_size,
        reload_between=_bool_param(data, "reload_between", config.RELOAD_BETWEEN_DEFAULT),
    )


@app.post("/batch/resume")
def batch_resume() -> Response:
    data = _payload()
    return _launch("resume", reactivate=_bool_param(data, "reactivate", False))


@app.get("/batch/state")
def batch_state() -> Response:
    status = run.run_store_command("status")
    status["ok"] = True
    status["last_summary"] = app.config.get("LAST_SUMMARY")
    status["last_error"] = app.config.get("LAST_ERROR")
    return jsonify(status)


@app.get("/download/partial")
def download_partial() -> Response:
    """Write the rows accumulated so far and serve them as a CSV attachment."""

    summary = run.run_store_command("partial")
    target = config.EXPORTS_DIR / os.path.basename(summary["path"])
    return send_file(target, as_attachment=True, download_name=target.name, mimetype="text/csv")


@app.post("/state/clear")
def clear_state() -> Response:
    return jsonify({"ok": True, **run.run_store_command("clear")})


@app.get("/exports/<path:filename>")
def download_export(filename: str) -> Response:
    """Serve a CSV artifact from the exports directory."""

    target = (config.EXPORTS_DIR / filename).resolve()
    root = config.EXPORTS_DIR.resolve()
    if not str(target).startswith(str(root)):
        return Response("Invalid path", status=400)
    if not target.exists() or not target.is_file():
        return Response("File not found", status=404)
    return send_file(target, as_attachment=True, download_name=target.name)


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem and store."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8080)
