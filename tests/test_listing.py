import pytest

from smartbills.scraper.error_codes import SelectionTriggerMissing
from smartbills.scraper.frames import find_listing_frame
from smartbills.scraper.listing import (
    MatchArgs,
    build_bill_index,
    find_selection_trigger,
    parse_trigger_args,
)
from tests.fakes import Bill, FakeFrame, listing_html


def _listing(bills):
    frame = FakeFrame(listing_html(bills))
    listing = find_listing_frame(frame)
    assert listing is not None
    return listing


def test_parse_trigger_args_strips_market_type_padding() -> None:
    args = parse_trigger_args("CallSJTransaction('NSE_CASH','FT017322','M ','2024062','01/04/2024')")

    assert args == MatchArgs(
        company_code="NSE_CASH",
        client="FT017322",
        market_type="M",
        settlement_number="2024062",
        settlement_date="01/04/2024",
    )


@pytest.mark.parametrize(
    "onclick",
    [None, "", "CallSJTransaction(null)", "CallSJTransaction('NSE_CASH','FT017322')"],
)
def test_parse_trigger_args_unparsable(onclick) -> None:
    assert parse_trigger_args(onclick) is None


def test_build_bill_index_in_display_order() -> None:
    bills = [
        Bill("JV-1", "2024062", debit="1,234.50", credit="0.00"),
        Bill("JV-2", "2024063", market_type="T", debit="0.00", credit="(15.00)"),
    ]

    records = build_bill_index(_listing(bills))

    assert [r.voucher_no for r in records] == ["JV-1", "JV-2"]
    first = records[0]
    assert first.trade_date == "01/04/2024"
    assert first.value_date == "03/04/2024"
    assert first.segment == "NSE_CASH"
    assert first.narration == "Bill No 2024062"
    assert first.debit == 1234.5
    assert first.credit == 0.0
    assert first.args.settlement_number == "2024062"
    assert records[1].args.market_type == "T"
    assert records[1].credit == -15.0


def test_build_bill_index_keeps_records_without_trigger_args() -> None:
    html = listing_html([Bill("JV-1", "2024062", trigger="CallSJTransaction(null)")])
    listing = find_listing_frame(FakeFrame(html))

    records = build_bill_index(listing)

    assert [r.voucher_no for r in records] == ["JV-1"]
    assert records[0].args is None


def test_find_selection_trigger_addresses_nth_element() -> None:
    listing = _listing([Bill("JV-1", "1"), Bill("JV-2", "2"), Bill("JV-3", "3")])

    trigger = find_selection_trigger(listing, "JV-3")

    assert trigger.index == 2
    assert trigger.voucher_no == "JV-3"
    assert trigger.selector.startswith("td[onclick")


def test_find_selection_trigger_missing_voucher() -> None:
    listing = _listing([Bill("JV-1", "1")])

    with pytest.raises(SelectionTriggerMissing) as excinfo:
        find_selection_trigger(listing, "JV-404")

    assert excinfo.value.voucher_no == "JV-404"
    assert excinfo.value.error_code == "selection_trigger_missing"
