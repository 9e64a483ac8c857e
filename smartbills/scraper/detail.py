"""Resolve the detail view rendered after a voucher click.

Resolution never depends on URLs. Every poll re-enumerates the frame
hierarchy and scans each frame in order:

1. the frame must carry a ``#TableHeader`` that mentions the expected market
   type and settlement number (any header passes when the bill carried no
   parsable trigger);
2. the frame must then hold either the ScreenFour layout or the Summary
   layout.

The first frame passing both checks wins. A stale view left over from the
previous voucher fails (1) and is ignored even when it is the only view
on screen.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from . import config
from .error_codes import DetailNotFound
from .frames import FrameNode, FramePath, enumerate_frames, format_path
from .listing import MatchArgs
from .logging_utils import _scraper_event
from .polling import Clock, Sleeper, wait_for
from .recognizers import screen_four_rows, summary_header_row
from .utils import collapse_ws

HEADER_ELEMENT_ID = "TableHeader"
_BLOCK_TAGS = frozenset({"br", "div", "p", "table", "tbody", "tr", "td", "th", "li"})


class DetailKind(str, enum.Enum):
    SCREEN_FOUR = "screen4"
    SUMMARY = "summary"


@dataclass(frozen=True)
class DetailExpectation:
    market_type: Optional[str] = None
    settlement_number: Optional[str] = None

    @classmethod
    def from_args(cls, args: Optional[MatchArgs]) -> Optional["DetailExpectation"]:
        if args is None:
            return None
        return cls(market_type=args.market_type, settlement_number=args.settlement_number)


@dataclass
class DetailView:
    kind: DetailKind
    path: FramePath
    header_text: str
    url: str
    doc: BeautifulSoup

    @property
    def label(self) -> str:
        return format_path(self.path)


def _rendered_parts(tag: Tag, parts: List[str]) -> None:
    for child in tag.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            parts.append(str(child))
        elif isinstance(child, Tag):
            block = child.name in _BLOCK_TAGS
            if block:
                parts.append(" ")
            _rendered_parts(child, parts)
            if block:
                parts.append(" ")


def rendered_text(tag: Tag) -> str:
    """Text of ``tag`` as a browser lays it out.

    Inline runs such as ``<b>2024</b><b>062</b>`` join without a gap; block
    and cell boundaries become a single space.
    """

    parts: List[str] = []
    _rendered_parts(tag, parts)
    return collapse_ws("".join(parts))


def header_text(doc: Optional[BeautifulSoup]) -> Optional[str]:
    if doc is None:
        return None
    element = doc.find(id=HEADER_ELEMENT_ID)
    if element is None:
        return None
    return rendered_text(element)


def header_matches(doc: Optional[BeautifulSoup], expected: Optional[DetailExpectation]) -> bool:
    """Check the detail header against ``expected``.

    The header element must exist; its text is only compared when something
    is expected.
    """

    text = header_text(doc)
    if text is None:
        return False
    if expected is None:
        return True
    if expected.market_type and f"Market Type : {expected.market_type}" not in text:
        return False
    if expected.settlement_number and f"Settlement Number : {expected.settlement_number}" not in text:
        return False
    return True


def classify_frame(node: FrameNode, expected: Optional[DetailExpectation]) -> Optional[DetailView]:
    """Return the detail view held by ``node``, or ``None``."""

    doc = node.doc
    if doc is None or not header_matches(doc, expected):
        return None
    if screen_four_rows(doc):
        kind = DetailKind.SCREEN_FOUR
    elif summary_header_row(doc) is not None:
        kind = DetailKind.SUMMARY
    else:
        return None
    return DetailView(kind, node.path, header_text(doc) or "", node.url, doc)


def find_detail_view(root: Any, expected: Optional[DetailExpectation]) -> Optional[DetailView]:
    for node in enumerate_frames(root):
        view = classify_frame(node, expected)
        if view is not None:
            return view
    return None


def resolve_detail_view(
    root: Any,
    expected: Optional[DetailExpectation],
    timeout: Optional[float] = None,
    *,
    interval: Optional[float] = None,
    sleep: Sleeper = time.sleep,
    clock: Clock = time.monotonic,
) -> DetailView:
    """Poll the hierarchy until a matching detail view renders.

    Raises :class:`DetailNotFound` after ``timeout`` seconds.
    """

    timeout = config.DETAIL_WAIT_TIMEOUT_SECONDS if timeout is None else timeout
    result = wait_for(
        lambda: find_detail_view(root, expected),
        timeout=timeout,
        interval=config.DETAIL_POLL_INTERVAL_SECONDS if interval is None else interval,
        sleep=sleep,
        clock=clock,
    )
    if not result.ok:
        _scraper_event(
            "error",
            phase="detail",
            step="detail_not_found",
            expected=expected,
            timeout=timeout,
            attempts=result.attempts,
        )
        raise DetailNotFound("voucher detail not found (header/grid not detected)")

    view = result.value
    _scraper_event(
        "detail",
        step="found",
        kind=view.kind.value,
        path=view.label,
        url=view.url,
        elapsed=round(result.elapsed, 3),
    )
    return view


__all__ = [
    "DetailKind",
    "DetailExpectation",
    "DetailView",
    "rendered_text",
    "header_text",
    "header_matches",
    "classify_frame",
    "find_detail_view",
    "resolve_detail_view",
]
