import pytest

from smartbills.scraper.error_codes import RestorationFailure
from smartbills.scraper.restore import listing_link_selector, restore_listing
from tests.fakes import (
    LISTING_URL,
    Bill,
    FakeFrame,
    FakeReport,
    FakeSession,
    ROOT_HTML,
    listing_html,
    summary_html,
)

BILLS = [Bill("JV-1", "2024062"), Bill("JV-2", "2024063")]


def test_link_selector_matches_path_or_full_url() -> None:
    selector = listing_link_selector(LISTING_URL)

    assert 'a[href="/WebClient/Ledger/SmartReport.cfm"]' in selector
    assert f'a[href="{LISTING_URL}"]' in selector


def test_restores_by_navigating_detail_frame() -> None:
    report = FakeReport(list(BILLS))
    report.content.html = BILLS[0].detail_html()
    session = report.session()

    listing = restore_listing(session, (0,), step_timeout=1, root_timeout=2)

    assert listing.path == (0,)
    assert report.content.gotos == [LISTING_URL]
    assert session.root_gotos == []


def test_restores_via_ancestor_when_detail_frame_is_nested() -> None:
    detail = FakeFrame(summary_html("M", "2024062", ["INFY"]))
    content = FakeFrame("<html><body>frameset</body></html>", children=[detail])
    root = FakeFrame(ROOT_HTML, children=[content])
    detail.on_goto = lambda frame, url: None

    def _swap_back(frame, url):
        frame.html = listing_html(BILLS)
        frame.children = []

    content.on_goto = _swap_back
    session = FakeSession(root)

    listing = restore_listing(session, (0, 0), step_timeout=0.5, root_timeout=2)

    assert detail.gotos == [LISTING_URL]
    assert content.gotos == [LISTING_URL]
    assert listing.path == (0,)


def test_restores_by_clicking_listing_link() -> None:
    menu = FakeFrame('<html><body><a href="/WebClient/Ledger/SmartReport.cfm">Smart Report</a></body></html>')
    content = FakeFrame(summary_html("M", "2024062", ["INFY"]))
    root = FakeFrame(ROOT_HTML, children=[menu, content])
    content.on_goto = lambda frame, url: None
    menu.on_click = lambda frame, selector, index: setattr(content, "html", listing_html(BILLS))
    session = FakeSession(root)

    listing = restore_listing(session, (1,), step_timeout=0.5, root_timeout=2)

    assert listing.path == (1,)
    assert menu.clicks and menu.clicks[0][1] == 0
    assert session.root_gotos == []


def test_falls_back_to_root_navigation() -> None:
    content = FakeFrame(summary_html("M", "2024062", ["INFY"]))
    root = FakeFrame(ROOT_HTML, children=[content])

    def _broken_nav(frame, url):
        raise RuntimeError("net::ERR_ABORTED")

    content.on_goto = _broken_nav
    session = FakeSession(root)
    session.on_goto_root = lambda s, url: setattr(content, "html", listing_html(BILLS))

    listing = restore_listing(session, (0,), step_timeout=0.5, root_timeout=2)

    assert content.gotos == [LISTING_URL]
    assert session.root_gotos == [LISTING_URL]
    assert listing.path == (0,)


def test_exhausted_strategies_raise() -> None:
    content = FakeFrame(summary_html("M", "2024062", ["INFY"]))
    content.on_goto = lambda frame, url: None
    session = FakeSession(FakeFrame(ROOT_HTML, children=[content]))

    with pytest.raises(RestorationFailure) as excinfo:
        restore_listing(session, (0,), step_timeout=0.5, root_timeout=1)

    assert excinfo.value.error_code == "restoration_failure"
    assert session.root_gotos == [LISTING_URL]


def test_root_navigation_error_is_fatal() -> None:
    content = FakeFrame(summary_html("M", "2024062", ["INFY"]))
    content.on_goto = lambda frame, url: None
    session = FakeSession(FakeFrame(ROOT_HTML, children=[content]))

    def _closed(s, url):
        raise RuntimeError("Page.goto: Target closed")

    session.on_goto_root = _closed

    with pytest.raises(RestorationFailure):
        restore_listing(session, (0,), step_timeout=0.5, root_timeout=1)


def test_link_strategy_looks_up_frames_again_after_each_wait() -> None:
    link = '<html><body><a href="/WebClient/Ledger/SmartReport.cfm">Smart Report</a></body></html>'
    first_menu = FakeFrame(link)
    content = FakeFrame(summary_html("M", "2024062", ["INFY"]))
    stale_menu = FakeFrame(link)
    fresh_menu = FakeFrame(link)
    root = FakeFrame(ROOT_HTML, children=[first_menu, content, stale_menu])
    content.on_goto = lambda frame, url: None

    def _replace_menu(frame, selector, index):
        root.children[2] = fresh_menu

    first_menu.on_click = _replace_menu
    fresh_menu.on_click = lambda frame, selector, index: setattr(content, "html", listing_html(BILLS))
    session = FakeSession(root)

    listing = restore_listing(session, (1,), step_timeout=0.5, root_timeout=2)

    assert listing.path == (1,)
    assert first_menu.clicks
    assert stale_menu.clicks == []
    assert fresh_menu.clicks
    assert session.root_gotos == []
