"""Bring the bill listing back after a voucher click replaced it.

Three strategies, tried in order, each with its own bounded wait:

1. navigate the detail frame, then each ancestor (deepest first, never the
   root), straight to the listing URL;
2. click a link to the listing found in any non-root frame;
3. navigate the root document to the listing URL and wait longer.

Failures of steps 1 and 2 are logged and fall through. Step 3 is fatal
when its navigation raises or its wait times out.
"""

from __future__ import annotations

from typing import Any, Optional

from . import config
from .browser import click_first, listing_path, navigate_frame
from .error_codes import ListingWaitTimeout, RestorationFailure
from .frames import (
    FramePath,
    ListingFrame,
    ancestor_paths,
    enumerate_frames,
    find_frame,
    format_path,
    wait_listing,
)
from .logging_utils import _scraper_event


def listing_link_selector(listing_url: str) -> str:
    path = listing_path(listing_url)
    return f'a[href="{path}"], a[href="{listing_url}"]'


def _wait(session: Any, timeout: float) -> Optional[ListingFrame]:
    try:
        return wait_listing(session.root, timeout, sleep=session.sleep, clock=session.clock)
    except ListingWaitTimeout:
        return None


def _via_ancestors(session: Any, detail_path: FramePath, timeout: float) -> Optional[ListingFrame]:
    for path in ancestor_paths(detail_path):
        node = find_frame(session.root, path)
        if node is None:
            continue
        _scraper_event("restore", step="ancestor", path=format_path(path))
        try:
            navigate_frame(node.handle, session.listing_url)
        except Exception as exc:  # noqa: BLE001
            _scraper_event("restore", step="ancestor_nav_failed", path=format_path(path), error=str(exc))
        listing = _wait(session, timeout)
        if listing is not None:
            return listing
    return None


def _via_link(session: Any, timeout: float) -> Optional[ListingFrame]:
    selector = listing_link_selector(session.listing_url)
    candidates = [node.path for node in enumerate_frames(session.root) if not node.is_root]
    for path in candidates:
        # Handles from before a click or wait are stale; look the frame up again.
        node = find_frame(session.root, path)
        if node is None:
            continue
        doc = node.doc
        if doc is None or not doc.select(selector):
            continue
        _scraper_event("restore", step="click_link", path=node.label)
        try:
            click_first(node.handle, selector)
        except Exception as exc:  # noqa: BLE001
            _scraper_event("restore", step="click_link_failed", path=node.label, error=str(exc))
        listing = _wait(session, timeout)
        if listing is not None:
            return listing
    return None


def restore_listing(
    session: Any,
    detail_path: FramePath,
    *,
    step_timeout: Optional[float] = None,
    root_timeout: Optional[float] = None,
) -> ListingFrame:
    """Return the re-located listing, or raise :class:`RestorationFailure`."""

    step_timeout = config.RESTORE_STEP_TIMEOUT_SECONDS if step_timeout is None else step_timeout
    root_timeout = config.RESTORE_ROOT_TIMEOUT_SECONDS if root_timeout is None else root_timeout

    listing = _via_ancestors(session, detail_path, step_timeout)
    if listing is None:
        listing = _via_link(session, step_timeout)
    if listing is not None:
        _scraper_event("restore", step="restored", path=listing.node.label)
        return listing

    _scraper_event("restore", step="goto_root", url=session.listing_url)
    try:
        session.goto_root(session.listing_url)
    except Exception as exc:  # noqa: BLE001
        _scraper_event("error", phase="restore", step="goto_root_failed", error=str(exc))
        raise RestorationFailure(f"root navigation to the listing failed: {exc}") from exc
    try:
        listing = wait_listing(session.root, root_timeout, sleep=session.sleep, clock=session.clock)
    except ListingWaitTimeout as exc:
        _scraper_event("error", phase="restore", step="exhausted", detail_path=format_path(detail_path))
        raise RestorationFailure("bill listing could not be restored") from exc
    _scraper_event("restore", step="restored", path=listing.node.label)
    return listing


__all__ = ["restore_listing", "listing_link_selector"]
