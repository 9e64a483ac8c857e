"""Build the ordered bill index from a listing frame."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from bs4 import Tag

from .amounts import parse_amount
from .error_codes import SelectionTriggerMissing
from .frames import ListingFrame
from .recognizers import ListingRow
from .utils import clean_text

# CallSJTransaction('NSE_CASH','FT017322','M ','2024062','01/04/2024')
TRIGGER_ARGS_PATTERN = re.compile(
    r"CallSJTransaction\('([^']+)','([^']+)','([^']+)','([^']+)','([^']+)'\)"
)


@dataclass(frozen=True)
class MatchArgs:
    """Identifying fields carried by a bill's selection trigger."""

    company_code: str
    client: str
    market_type: str
    settlement_number: str
    settlement_date: str


@dataclass(frozen=True)
class BillRecord:
    trade_date: str
    value_date: str
    voucher_no: str
    segment: str
    narration: str
    debit: float
    credit: float
    args: Optional[MatchArgs] = None


@dataclass(frozen=True)
class SelectionTrigger:
    """Address of a clickable voucher element inside the live frame."""

    selector: str
    index: int
    voucher_no: str


def parse_trigger_args(onclick: str | None) -> Optional[MatchArgs]:
    """Parse the five quoted trigger arguments, or ``None`` if they don't fit."""

    match = TRIGGER_ARGS_PATTERN.search(onclick or "")
    if not match:
        return None
    company_code, client, market_type, settlement_number, settlement_date = match.groups()
    return MatchArgs(
        company_code=company_code,
        client=client,
        market_type=market_type.strip(),
        settlement_number=settlement_number,
        settlement_date=settlement_date,
    )


def cell_text(cell: Optional[Tag]) -> str:
    if cell is None:
        return ""
    return clean_text(cell.get_text())


def _first_cell(cells: Sequence[Tag], *indexes: int) -> Optional[Tag]:
    for index in indexes:
        if index < len(cells):
            return cells[index]
    return None


def record_from_row(listing_row: ListingRow) -> BillRecord:
    cells = listing_row.row.find_all("td")
    return BillRecord(
        trade_date=cell_text(_first_cell(cells, 0)),
        value_date=cell_text(_first_cell(cells, 1)),
        voucher_no=cell_text(listing_row.cell),
        segment=cell_text(_first_cell(cells, 4, 5)),
        narration=cell_text(_first_cell(cells, 5, 6)),
        debit=parse_amount(cell_text(_first_cell(cells, 7, 8))),
        credit=parse_amount(cell_text(_first_cell(cells, 8, 9))),
        args=parse_trigger_args(listing_row.onclick),
    )


def build_bill_index(listing: ListingFrame) -> List[BillRecord]:
    """Return the listing's bills in display order."""

    return [record_from_row(row) for row in listing.rows]


def find_selection_trigger(listing: ListingFrame, voucher_no: str) -> SelectionTrigger:
    """Locate the clickable element for ``voucher_no`` in the current snapshot.

    Raises :class:`SelectionTriggerMissing` when the voucher is not rendered.
    """

    wanted = clean_text(voucher_no)
    for row in listing.rows:
        if cell_text(row.cell) != wanted:
            continue
        candidates = listing.doc.select(row.selector)
        for index, element in enumerate(candidates):
            if element is row.target:
                return SelectionTrigger(row.selector, index, wanted)
    raise SelectionTriggerMissing(voucher_no)


__all__ = [
    "MatchArgs",
    "BillRecord",
    "SelectionTrigger",
    "TRIGGER_ARGS_PATTERN",
    "parse_trigger_args",
    "record_from_row",
    "build_bill_index",
    "find_selection_trigger",
]
