from __future__ import annotations

"""Centralised error code taxonomy for extraction failures.

These codes are persisted in the run state (``last_error_code``) and included
in structured logs so that an operator can tell why a run halted. Keep them
stable: partial runs written by an older build are resumed by a newer one.
"""


class ErrorCode:
    LISTING_NOT_FOUND = "listing_not_found"
    LISTING_WAIT_TIMEOUT = "listing_wait_timeout"
    SELECTION_TRIGGER_MISSING = "selection_trigger_missing"
    DETAIL_NOT_FOUND = "detail_not_found"
    RESTORATION_FAILURE = "restoration_failure"
    TARGET_CLOSED = "target_closed"
    INTERNAL = "internal_error"


# Record-scoped: the record is skipped and the batch continues. Every other
# code halts the run with ``active=False`` until an operator restarts it.
RECORD_SKIP_ERROR_CODES = {
    ErrorCode.SELECTION_TRIGGER_MISSING,
}


class SmartBillsError(Exception):
    """Base class for failures raised by the extraction engine."""

    error_code: str = ErrorCode.INTERNAL


class ListingNotFound(SmartBillsError):
    """The bill listing is not present when a run starts."""

    error_code = ErrorCode.LISTING_NOT_FOUND


class ListingWaitTimeout(SmartBillsError):
    """The bill listing did not (re)appear within the bounded wait."""

    error_code = ErrorCode.LISTING_WAIT_TIMEOUT


class SelectionTriggerMissing(SmartBillsError):
    """A record's voucher cell is absent from the current listing snapshot."""

    error_code = ErrorCode.SELECTION_TRIGGER_MISSING

    def __init__(self, voucher_no: str) -> None:
        super().__init__(f"voucher cell not found for {voucher_no!r}")
        self.voucher_no = voucher_no


class DetailNotFound(SmartBillsError):
    """No matching detail view rendered within the timeout."""

    error_code = ErrorCode.DETAIL_NOT_FOUND


class RestorationFailure(SmartBillsError):
    """Every listing restoration strategy was exhausted."""

    error_code = ErrorCode.RESTORATION_FAILURE


def is_target_closed_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* indicates the browser target is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
            "Execution context was destroyed",
        )
    )


def error_code_for(exc: BaseException) -> str:
    """Return the taxonomy code for ``exc``."""

    if isinstance(exc, SmartBillsError):
        return exc.error_code
    if is_target_closed_error(exc):
        return ErrorCode.TARGET_CLOSED
    return ErrorCode.INTERNAL


__all__ = [
    "ErrorCode",
    "RECORD_SKIP_ERROR_CODES",
    "SmartBillsError",
    "ListingNotFound",
    "ListingWaitTimeout",
    "SelectionTriggerMissing",
    "DetailNotFound",
    "RestorationFailure",
    "error_code_for",
    "is_target_closed_error",
]
