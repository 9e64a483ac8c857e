"""Enumerate the nested frame hierarchy and locate the bill listing.

Frames are re-enumerated on every request: the host replaces documents on
navigation, so a ``FrameNode`` must never be carried across a wait. Each node
holds the live Playwright ``Frame`` (``handle``) for interactions and a lazily
parsed HTML snapshot for inspection.
"""

from __future__ import annotations

import time
import weakref
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup

from . import config
from .error_codes import ListingWaitTimeout
from .logging_utils import _scraper_event
from .polling import Sleeper, Clock, wait_for
from .recognizers import ListingRow, listing_rows

FramePath = Tuple[int, ...]

_UNREAD = object()


def format_path(path: FramePath) -> str:
    """Render ``(0, 2)`` as ``top>frame[0]>frame[2]``."""

    return ">".join(["top", *(f"frame[{i}]" for i in path)])


def ancestor_paths(path: FramePath) -> List[FramePath]:
    """Return ``path`` and its ancestors deepest-first, excluding the root."""

    return [path[:i] for i in range(len(path), 0, -1)]


@dataclass(eq=False)
class FrameNode:
    path: FramePath
    handle: Any
    parent_ref: Optional[weakref.ReferenceType] = field(default=None, repr=False)
    _doc: Any = field(default=_UNREAD, repr=False)

    @property
    def parent(self) -> Optional["FrameNode"]:
        return self.parent_ref() if self.parent_ref is not None else None

    @property
    def label(self) -> str:
        return format_path(self.path)

    @property
    def is_root(self) -> bool:
        return not self.path

    @property
    def url(self) -> str:
        try:
            return str(self.handle.url or "")
        except Exception:  # noqa: BLE001
            return ""

    @property
    def doc(self) -> Optional[BeautifulSoup]:
        """Parsed snapshot of the frame's document, or ``None`` if unreadable."""

        if self._doc is _UNREAD:
            self._doc = snapshot(self.handle)
        return self._doc

    def is_detached(self) -> bool:
        try:
            return bool(self.handle.is_detached())
        except Exception:  # noqa: BLE001
            return True


def snapshot(handle: Any) -> Optional[BeautifulSoup]:
    """Return the frame's current HTML parsed with html5lib.

    Frames that are navigating, detached or cross-origin raise on
    ``content()``; they are treated as empty documents.
    """

    try:
        html = handle.content()
    except Exception:  # noqa: BLE001
        # Polled many times per second; unreadable frames are routine.
        return None
    return BeautifulSoup(html or "", "html5lib")


def _children(handle: Any) -> list:
    try:
        return list(handle.child_frames)
    except Exception:  # noqa: BLE001
        return []


def iter_frames(root: Any) -> Iterator[FrameNode]:
    """Walk the hierarchy depth-first from ``root`` yielding fresh nodes."""

    def walk(handle: Any, path: FramePath, parent: Optional[FrameNode]) -> Iterator[FrameNode]:
        node = FrameNode(path, handle, weakref.ref(parent) if parent is not None else None)
        yield node
        for index, child in enumerate(_children(handle)):
            yield from walk(child, path + (index,), node)

    yield from walk(root, (), None)


def enumerate_frames(root: Any) -> List[FrameNode]:
    return list(iter_frames(root))


def find_frame(root: Any, path: FramePath) -> Optional[FrameNode]:
    """Return the node currently sitting at ``path``, if any."""

    for node in iter_frames(root):
        if node.path == path:
            return node
    return None


@dataclass
class ListingFrame:
    node: FrameNode
    rows: List[ListingRow]

    @property
    def doc(self) -> BeautifulSoup:
        return self.node.doc

    @property
    def path(self) -> FramePath:
        return self.node.path


def find_listing_frame(root: Any) -> Optional[ListingFrame]:
    """Return the first frame holding bill listing rows, or ``None``."""

    for node in iter_frames(root):
        rows = listing_rows(node.doc)
        if rows:
            return ListingFrame(node, rows)
    return None


def wait_listing(
    root: Any,
    timeout: Optional[float] = None,
    *,
    interval: Optional[float] = None,
    sleep: Sleeper = time.sleep,
    clock: Clock = time.monotonic,
) -> ListingFrame:
    """Poll :func:`find_listing_frame` until it succeeds or ``timeout`` elapses."""

    timeout = config.LISTING_WAIT_TIMEOUT_SECONDS if timeout is None else timeout
    result = wait_for(
        lambda: find_listing_frame(root),
        timeout=timeout,
        interval=config.LISTING_POLL_INTERVAL_SECONDS if interval is None else interval,
        sleep=sleep,
        clock=clock,
    )
    if not result.ok:
        _scraper_event(
            "error",
            phase="listing",
            step="wait_listing_timeout",
            timeout=timeout,
            attempts=result.attempts,
        )
        raise ListingWaitTimeout(f"bill listing not found within {timeout:.1f}s")
    return result.value


__all__ = [
    "FramePath",
    "FrameNode",
    "ListingFrame",
    "format_path",
    "ancestor_paths",
    "snapshot",
    "iter_frames",
    "enumerate_frames",
    "find_frame",
    "find_listing_frame",
    "wait_listing",
]
