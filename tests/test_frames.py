import pytest

from smartbills.scraper.error_codes import ListingWaitTimeout
from smartbills.scraper.frames import (
    ancestor_paths,
    enumerate_frames,
    find_frame,
    find_listing_frame,
    format_path,
    wait_listing,
)
from tests.fakes import Bill, FakeClock, FakeFrame, ROOT_HTML, listing_html


def _tree():
    leaf = FakeFrame(listing_html([Bill("JV-1", "1")]), url="https://host/listing")
    middle = FakeFrame("<html><body>menu</body></html>", children=[FakeFrame(), leaf])
    root = FakeFrame(ROOT_HTML, children=[middle])
    return root, middle, leaf


def test_path_labels() -> None:
    assert format_path(()) == "top"
    assert format_path((0, 2)) == "top>frame[0]>frame[2]"


def test_ancestor_paths_deepest_first_without_root() -> None:
    assert ancestor_paths((1, 0, 2)) == [(1, 0, 2), (1, 0), (1,)]
    assert ancestor_paths(()) == []


def test_enumerate_frames_depth_first_with_parents() -> None:
    root, middle, leaf = _tree()

    nodes = enumerate_frames(root)

    assert [node.path for node in nodes] == [(), (0,), (0, 0), (0, 1)]
    assert nodes[0].is_root
    assert nodes[3].handle is leaf
    assert nodes[3].parent is nodes[1]
    assert nodes[1].parent is nodes[0]
    assert nodes[3].url == "https://host/listing"


def test_find_frame_by_path() -> None:
    root, middle, leaf = _tree()

    assert find_frame(root, (0, 1)).handle is leaf
    assert find_frame(root, (0, 5)) is None


def test_find_listing_frame_reports_path() -> None:
    root, _middle, _leaf = _tree()

    listing = find_listing_frame(root)

    assert listing is not None
    assert listing.path == (0, 1)
    assert len(listing.rows) == 1


def test_detached_frame_reads_as_empty() -> None:
    root, _middle, leaf = _tree()
    leaf.detached = True

    assert find_listing_frame(root) is None
    assert find_frame(root, (0, 1)).is_detached() is True
    assert find_frame(root, (0, 1)).doc is None


def test_wait_listing_times_out() -> None:
    clock = FakeClock()
    root = FakeFrame(ROOT_HTML)

    with pytest.raises(ListingWaitTimeout):
        wait_listing(root, 1.0, interval=0.5, sleep=clock.sleep, clock=clock)

    assert clock.sleeps == [0.5, 0.5]


def test_wait_listing_sees_late_listing() -> None:
    clock = FakeClock()
    content = FakeFrame("<html><body>loading</body></html>")
    root = FakeFrame(ROOT_HTML, children=[content])
    clock.on_sleep = lambda n: setattr(content, "html", listing_html([Bill("JV-1", "1")]))

    listing = wait_listing(root, 5.0, interval=0.2, sleep=clock.sleep, clock=clock)

    assert listing.path == (0,)
    assert len(clock.sleeps) == 1
