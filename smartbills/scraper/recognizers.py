"""Ordered recognizer chains over HTML snapshots.

The host renders the same logical rows in more than one markup shape. Each
shape gets its own small recognizer returning the matched rows (or ``None``);
:func:`first_match` applies them in order and keeps the first non-empty
result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

from bs4 import BeautifulSoup, Tag

from .utils import clean_text

S = TypeVar("S")
R = TypeVar("R")

LISTING_TRIGGER_PREFIX = "CallSJTransaction"
LISTING_ROW_MARKER = re.compile(r"Bill", re.I)
SCREEN_FOUR_ROW_MARKER = "ShowDetails"
SCREEN_FOUR_FORM_MARKER = "ScreenScripSummaryForm"
SUMMARY_HEADER_WORDS = ("security", "bought", "sold", "net")
CELL_TRIGGER_SELECTOR = f'td[onclick^="{LISTING_TRIGGER_PREFIX}"]'
ANCHOR_TRIGGER_SELECTOR = (
    f'a[onclick*="{LISTING_TRIGGER_PREFIX}"], a[href*="{LISTING_TRIGGER_PREFIX}"]'
)


@dataclass(frozen=True)
class Recognizer(Generic[S, R]):
    name: str
    match: Callable[[S], Optional[R]]


def first_match(recognizers: Sequence[Recognizer[S, R]], subject: S) -> Optional[R]:
    """Return the first non-empty result of ``recognizers`` applied to ``subject``."""

    for recognizer in recognizers:
        result = recognizer.match(subject)
        if result:
            return result
    return None


def row_text(tr: Tag) -> str:
    return clean_text(tr.get_text(" "))


def compact_lower(tr: Tag) -> str:
    """Row text with all whitespace removed, lower-cased."""

    return re.sub(r"\s+", "", tr.get_text("")).lower()


@dataclass(frozen=True)
class ListingRow:
    """A listing ``<tr>`` with its voucher cell and the element to click.

    ``selector`` matches every click target of the same shape in the
    document, so the live element can be addressed as ``selector`` + nth.
    """

    row: Tag
    cell: Tag
    target: Tag
    onclick: str
    selector: str


def _cell_trigger_rows(doc: BeautifulSoup) -> Optional[List[ListingRow]]:
    out: List[ListingRow] = []
    for tr in doc.find_all("tr"):
        if not LISTING_ROW_MARKER.search(row_text(tr)):
            continue
        cell = tr.find(
            "td",
            attrs={"onclick": lambda v: bool(v) and v.startswith(LISTING_TRIGGER_PREFIX)},
        )
        if cell is not None and cell.find_parent("tr") is tr:
            out.append(ListingRow(tr, cell, cell, cell.get("onclick", ""), CELL_TRIGGER_SELECTOR))
    return out or None


def _anchor_trigger_rows(doc: BeautifulSoup) -> Optional[List[ListingRow]]:
    # Some report variants wrap the voucher number in an anchor instead.
    out: List[ListingRow] = []
    for tr in doc.find_all("tr"):
        if not LISTING_ROW_MARKER.search(row_text(tr)):
            continue
        for anchor in tr.find_all("a"):
            raw = anchor.get("onclick") or anchor.get("href") or ""
            value = raw.split("javascript:", 1)[-1].strip()
            if value.startswith(LISTING_TRIGGER_PREFIX) and anchor.find_parent("tr") is tr:
                cell = anchor.find_parent("td") or anchor
                out.append(ListingRow(tr, cell, anchor, value, ANCHOR_TRIGGER_SELECTOR))
                break
    return out or None


LISTING_ROW_RECOGNIZERS: Sequence[Recognizer[BeautifulSoup, List[ListingRow]]] = (
    Recognizer("td_onclick", _cell_trigger_rows),
    Recognizer("anchor_trigger", _anchor_trigger_rows),
)


def listing_rows(doc: Optional[BeautifulSoup]) -> List[ListingRow]:
    if doc is None:
        return []
    return first_match(LISTING_ROW_RECOGNIZERS, doc) or []


def screen_four_rows(doc: Optional[BeautifulSoup]) -> List[Tag]:
    """Rows of the per-scrip ScreenFour layout."""

    if doc is None:
        return []
    return [
        tr
        for tr in doc.find_all("tr", onclick=True)
        if SCREEN_FOUR_ROW_MARKER in tr["onclick"] and SCREEN_FOUR_FORM_MARKER in tr["onclick"]
    ]


def summary_header_row(doc: Optional[BeautifulSoup]) -> Optional[Tag]:
    """The Security/Bought/Sold/Net heading row of the Summary layout."""

    if doc is None:
        return None
    for tr in doc.find_all("tr"):
        if not _is_summary_header(tr):
            continue
        # Layout tables nest; the heading is the innermost matching row.
        if any(_is_summary_header(inner) for inner in tr.find_all("tr")):
            continue
        return tr
    return None


def _is_summary_header(tr: Tag) -> bool:
    text = compact_lower(tr)
    return all(word in text for word in SUMMARY_HEADER_WORDS)


__all__ = [
    "Recognizer",
    "first_match",
    "ListingRow",
    "LISTING_ROW_RECOGNIZERS",
    "listing_rows",
    "screen_four_rows",
    "summary_header_row",
    "row_text",
    "compact_lower",
]
