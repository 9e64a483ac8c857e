"""Configuration constants for the Smart report bill extractor."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("SMARTBILLS_DATA_DIR", "data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
EXPORTS_DIR: Path = DATA_DIR / "exports"
RUNS_DIR: Path = DATA_DIR / "runs"
SCREENSHOT_DIR: Path = DATA_DIR / "screenshots"
# Durable run state + accumulated rows. Only one of the two backends is used,
# selected by STATE_BACKEND.
STATE_FILE: Path = DATA_DIR / "run_state.json"
DB_PATH: Path = DATA_DIR / "smartbills.db"
STATE_BACKEND: str = os.getenv("SMARTBILLS_STATE_BACKEND", "json").strip().lower() or "json"

DEFAULT_LISTING_URL: str = "https://bo.ftconline.in/WebClient2425/Ledger/SmartReport.cfm"
LISTING_URL: str = os.getenv("SMARTBILLS_LISTING_URL", DEFAULT_LISTING_URL).strip() or DEFAULT_LISTING_URL

EXPORT_PREFIX: str = "flattrade-smart-bills"
EXPORTS_KEEP_MAX: int = int(os.getenv("EXPORTS_KEEP_MAX", "20"))

# Browser session. When CDP_URL is set the operator's already logged-in
# browser is reused; otherwise a persistent Chromium profile is launched.
CDP_URL: str = os.getenv("SMARTBILLS_CDP_URL", "").strip()
BROWSER_PROFILE_DIR: Path = Path(
    os.getenv("SMARTBILLS_PROFILE_DIR", str(DATA_DIR / "browser_profile"))
)
HEADLESS: bool = os.getenv("SMARTBILLS_HEADLESS", "false").strip().lower() not in {
    "0",
    "false",
    "no",
}


def _parse_timeout_seconds(env_var: str, default: float, *, minimum: float = 0.0) -> float:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = float(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


# Bounded waits (seconds)
LISTING_WAIT_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "SMARTBILLS_LISTING_WAIT_SECONDS", 12
)
DETAIL_WAIT_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "SMARTBILLS_DETAIL_WAIT_SECONDS", 25
)
# Per-step wait used by the ancestor and link restoration strategies.
RESTORE_STEP_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "SMARTBILLS_RESTORE_STEP_SECONDS", 10
)
# Extended wait after navigating the root document.
RESTORE_ROOT_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "SMARTBILLS_RESTORE_ROOT_SECONDS", 15
)
NAV_TIMEOUT_SECONDS: float = _parse_timeout_seconds("SMARTBILLS_NAV_TIMEOUT_SECONDS", 25)

# Poll intervals (seconds)
LISTING_POLL_INTERVAL_SECONDS: float = _parse_timeout_seconds(
    "SMARTBILLS_LISTING_POLL_SECONDS", 0.2
)
DETAIL_POLL_INTERVAL_SECONDS: float = _parse_timeout_seconds(
    "SMARTBILLS_DETAIL_POLL_SECONDS", 0.15
)
INTER_RECORD_DELAY_SECONDS: float = _parse_timeout_seconds(
    "SMARTBILLS_INTER_RECORD_DELAY_SECONDS", 0.2
)

# Click-level timeout remains in milliseconds to match Playwright API expectations.
CLICK_TIMEOUT_MS: int = int(os.getenv("SMARTBILLS_CLICK_TIMEOUT_MS", "5000"))

# Batching defaults
BATCH_SIZE_DEFAULT: int = int(os.getenv("SMARTBILLS_BATCH_SIZE", "25"))
RELOAD_BETWEEN_DEFAULT: bool = os.getenv("SMARTBILLS_RELOAD_BETWEEN", "true").strip().lower() not in {
    "0",
    "false",
    "no",
}
# Upper bound on reload/auto-resume cycles a single runner invocation performs.
MAX_RELOAD_CYCLES: int = int(os.getenv("SMARTBILLS_MAX_RELOAD_CYCLES", "1000"))


def use_sqlite_store() -> bool:
    """Return True when run state should live in SQLite instead of JSON."""

    return STATE_BACKEND == "sqlite"
