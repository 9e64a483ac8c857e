"""Structured ``[SCRAPER][LABEL] k=v`` event lines for the bill extractor."""

from __future__ import annotations

import enum
from typing import Any

from .utils import log_line

# Record identity goes first so one voucher's trail can be grepped across events.
_LEADING_FIELDS = ("index", "voucher")


def _render(value: Any) -> str:
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, float):
        return f"{value:.3f}"
    return repr(value)


def _scraper_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit one event for a run, batch or voucher step.

    ``label`` names the event family (``record``, ``detail``, ``restore``,
    ``state``, ``error``...). ``phase`` stands in for the label when none is
    given; with both, ``phase`` travels in the payload instead. ``index`` and
    ``voucher`` lead the payload, the remaining fields follow sorted by name.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        keys = [k for k in _LEADING_FIELDS if k in fields]
        keys += sorted(k for k in fields if k not in _LEADING_FIELDS)
        payload = ", ".join(f"{k}={_render(fields[k])}" for k in keys)
        log_line(f"[SCRAPER][{phase_label.upper()}] {payload}")
    except Exception:
        # Never let logging break the scraper.
        return


__all__ = ["_scraper_event"]
