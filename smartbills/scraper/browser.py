"""Playwright-backed browser session used by the extraction runner.

Everything the engine does to the live page goes through this module: the
orchestrator and the restoration strategies only see a session exposing
``root``, ``listing_url``, ``sleep``, ``reload``, ``goto_root`` and
``screenshot``, which keeps them drivable by fakes in tests.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional
from urllib.parse import urlparse

from playwright.sync_api import (
    BrowserContext,
    Error as PWError,
    Page,
    TimeoutError as PWTimeout,
    sync_playwright,
)

from . import config
from .error_codes import is_target_closed_error
from .listing import SelectionTrigger
from .logging_utils import _scraper_event
from .utils import log_line, sanitize_filename

UA = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def listing_path(url: str) -> str:
    """Return the path component the restoration link scan matches against."""

    return urlparse(url).path or url


def click_trigger(handle: Any, trigger: SelectionTrigger) -> None:
    """Scroll the voucher element into view and click it."""

    target = handle.locator(trigger.selector).nth(trigger.index)
    try:
        target.scroll_into_view_if_needed(timeout=config.CLICK_TIMEOUT_MS)
    except PWTimeout:
        pass
    target.click(timeout=config.CLICK_TIMEOUT_MS)


def navigate_frame(handle: Any, url: str) -> None:
    """Point a (child) frame at ``url`` without waiting for it to finish loading."""

    handle.goto(url, wait_until="commit", timeout=int(config.NAV_TIMEOUT_SECONDS * 1000))


def click_first(handle: Any, selector: str) -> None:
    handle.locator(selector).first.click(timeout=config.CLICK_TIMEOUT_MS)


class PlaywrightSession:
    """Single page driven by the runner thread."""

    def __init__(self, page: Page, listing_url: str = config.LISTING_URL) -> None:
        self.page = page
        self.listing_url = listing_url

    @property
    def root(self) -> Any:
        return self.page.main_frame

    def clock(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        """Wait safely for ``seconds`` only if the page remains open."""

        if seconds is None or seconds <= 0:
            return
        if not self.page.is_closed():
            self.page.wait_for_timeout(int(seconds * 1000))

    def reload(self) -> None:
        _scraper_event("nav", step="reload", url=self.page.url)
        self.page.reload(
            wait_until="domcontentloaded",
            timeout=int(config.NAV_TIMEOUT_SECONDS * 1000),
        )

    def goto_root(self, url: str) -> None:
        _scraper_event("nav", step="goto_root", url=url)
        self.page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=int(config.NAV_TIMEOUT_SECONDS * 1000),
        )

    def screenshot(self, name: str) -> Optional[Path]:
        """Save a full-page screenshot for debugging; never raises."""

        path = config.SCREENSHOT_DIR / f"{sanitize_filename(name)}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.page.screenshot(path=str(path), full_page=True)
            log_line(f"Saved debug screenshot -> {path}")
            return path
        except Exception as exc:  # noqa: BLE001
            log_line(f"Failed to save debug screenshot: {exc}")
            return None


def _pick_page(context: BrowserContext, listing_url: str) -> Page:
    wanted = listing_path(listing_url)
    for page in context.pages:
        if wanted in page.url:
            return page
    for page in context.pages:
        if urlparse(page.url).netloc == urlparse(listing_url).netloc:
            return page
    return context.pages[0] if context.pages else context.new_page()


def _ensure_on_listing(page: Page, listing_url: str) -> None:
    if urlparse(page.url).netloc == urlparse(listing_url).netloc:
        return
    try:
        page.goto(
            listing_url,
            wait_until="domcontentloaded",
            timeout=int(config.NAV_TIMEOUT_SECONDS * 1000),
        )
    except PWTimeout as exc:
        log_line(f"[SCRAPER][ERROR][NAV] goto({listing_url!r}) timed out: {exc}")
    except PWError as exc:
        if is_target_closed_error(exc):
            raise
        log_line(f"[SCRAPER][ERROR][NAV] goto({listing_url!r}) failed: {exc}")


@contextmanager
def open_session(listing_url: str = config.LISTING_URL) -> Iterator[PlaywrightSession]:
    """Yield a session on the Smart report page.

    With ``SMARTBILLS_CDP_URL`` the operator's running browser is reused and
    left open afterwards; otherwise a persistent Chromium profile is launched
    so a manual login survives between runs.
    """

    with sync_playwright() as pw:
        if config.CDP_URL:
            browser = pw.chromium.connect_over_cdp(config.CDP_URL)
            context = browser.contexts[0] if browser.contexts else browser.new_context()
            owns_context = False
            _scraper_event("browser", step="connect_over_cdp", url=config.CDP_URL)
        else:
            config.BROWSER_PROFILE_DIR.mkdir(parents=True, exist_ok=True)
            context = pw.chromium.launch_persistent_context(
                str(config.BROWSER_PROFILE_DIR),
                headless=config.HEADLESS,
                user_agent=UA,
                viewport={"width": 1368, "height": 900},
                args=["--disable-blink-features=AutomationControlled"],
            )
            owns_context = True
            _scraper_event(
                "browser",
                step="launch_persistent_context",
                profile=str(config.BROWSER_PROFILE_DIR),
                headless=config.HEADLESS,
            )

        page = _pick_page(context, listing_url)
        _ensure_on_listing(page, listing_url)
        try:
            yield PlaywrightSession(page, listing_url)
        finally:
            if owns_context:
                try:
                    context.close()
                except PWError as exc:
                    log_line(f"[BROWSER] context close failed: {exc}")


__all__ = [
    "PlaywrightSession",
    "open_session",
    "listing_path",
    "click_trigger",
    "navigate_frame",
    "click_first",
]
