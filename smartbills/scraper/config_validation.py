from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Non-fatal adjustments are logged but do not raise.
    """

    if config.STATE_BACKEND not in {"json", "sqlite"}:
        _raise_config_error(
            f"SMARTBILLS_STATE_BACKEND must be 'json' or 'sqlite', got {config.STATE_BACKEND!r}.",
            entrypoint=entrypoint,
            error="state_backend_invalid",
        )

    if not config.LISTING_URL.lower().startswith(("http://", "https://")):
        _raise_config_error(
            "SMARTBILLS_LISTING_URL must be an absolute http(s) URL.",
            entrypoint=entrypoint,
            error="listing_url_invalid",
        )

    positive_fields = [
        ("LISTING_WAIT_TIMEOUT_SECONDS", config.LISTING_WAIT_TIMEOUT_SECONDS),
        ("DETAIL_WAIT_TIMEOUT_SECONDS", config.DETAIL_WAIT_TIMEOUT_SECONDS),
        ("RESTORE_STEP_TIMEOUT_SECONDS", config.RESTORE_STEP_TIMEOUT_SECONDS),
        ("RESTORE_ROOT_TIMEOUT_SECONDS", config.RESTORE_ROOT_TIMEOUT_SECONDS),
        ("NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("LISTING_POLL_INTERVAL_SECONDS", config.LISTING_POLL_INTERVAL_SECONDS),
        ("DETAIL_POLL_INTERVAL_SECONDS", config.DETAIL_POLL_INTERVAL_SECONDS),
    ]
    for field_name, value in positive_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    if config.RESTORE_ROOT_TIMEOUT_SECONDS < config.RESTORE_STEP_TIMEOUT_SECONDS:
        _scraper_event(
            "state",
            phase="config",
            context="runtime_validation",
            kind="config_adjustment",
            field="RESTORE_ROOT_TIMEOUT_SECONDS",
            value=config.RESTORE_ROOT_TIMEOUT_SECONDS,
            adjusted=config.RESTORE_STEP_TIMEOUT_SECONDS,
            entrypoint=entrypoint,
        )
        log_line("[CONFIG] RESTORE_ROOT_TIMEOUT_SECONDS below step timeout; raising it to match.")
        config.RESTORE_ROOT_TIMEOUT_SECONDS = config.RESTORE_STEP_TIMEOUT_SECONDS

    if config.BATCH_SIZE_DEFAULT < 1:
        _scraper_event(
            "state",
            phase="config",
            context="runtime_validation",
            kind="config_adjustment",
            field="BATCH_SIZE_DEFAULT",
            value=config.BATCH_SIZE_DEFAULT,
            adjusted=1,
            entrypoint=entrypoint,
        )
        log_line("[CONFIG] BATCH_SIZE_DEFAULT < 1; clamping to 1.")
        config.BATCH_SIZE_DEFAULT = 1


__all__ = ["validate_runtime_config", "Entrypoint"]
