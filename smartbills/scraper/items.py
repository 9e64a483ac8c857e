"""Parse trade line items out of a resolved detail view."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional

from bs4 import Tag

from .amounts import parse_amount
from .detail import DetailKind, DetailView
from .recognizers import screen_four_rows, summary_header_row
from .utils import clean_text

MIN_ITEM_CELLS = 11
_TOTAL = re.compile(r"Total", re.I)


@dataclass(frozen=True)
class LineItem:
    scrip: str
    buy_qty: float
    buy_avg: float
    buy_amount: float
    sell_qty: float
    sell_avg: float
    sell_amount: float
    net_qty: float
    net_avg: float
    net_amount: float


def _is_total_row(tr: Tag) -> bool:
    return tr.find("th") is not None and bool(_TOTAL.search(tr.get_text(" ")))


def _following_tables(table: Tag) -> Iterator[Tag]:
    sibling = table.find_next_sibling()
    while sibling is not None and sibling.name == "table":
        yield sibling
        sibling = sibling.find_next_sibling()


def summary_rows(header_row: Tag) -> List[Tag]:
    """Collect candidate item rows below the Summary heading.

    Walks the heading's table and then each directly following sibling table,
    stopping before the first ``Total`` heading row.
    """

    table = header_row.find_parent("table")
    if table is None:
        return []

    rows: List[Tag] = []
    for tbl in (table, *_following_tables(table)):
        for tr in tbl.find_all("tr"):
            if _is_total_row(tr):
                return rows
            if len(tr.find_all("td")) >= MIN_ITEM_CELLS:
                rows.append(tr)
    return rows


def item_from_row(tr: Tag) -> Optional[LineItem]:
    cells = tr.find_all("td")
    if len(cells) < MIN_ITEM_CELLS:
        return None
    values = [parse_amount(cells[i].get_text()) for i in range(2, 11)]
    return LineItem(clean_text(cells[1].get_text()), *values)


def parse_line_items(view: DetailView) -> List[LineItem]:
    if view.kind is DetailKind.SCREEN_FOUR:
        rows = screen_four_rows(view.doc)
    else:
        header = summary_header_row(view.doc)
        rows = summary_rows(header) if header is not None else []

    items: List[LineItem] = []
    for tr in rows:
        item = item_from_row(tr)
        if item is not None:
            items.append(item)
    return items


__all__ = ["LineItem", "MIN_ITEM_CELLS", "summary_rows", "item_from_row", "parse_line_items"]
