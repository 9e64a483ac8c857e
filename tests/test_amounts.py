import pytest

from smartbills.scraper.amounts import format_amount, parse_amount


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1,234.50", 1234.5),
        ("₹ 1,234.50 CR", 1234.5),
        ("2,000.00 dr", 2000.0),
        ("(200.00)", -200.0),
        (" (1,005.25) ", -1005.25),
        ("-42", -42.0),
        (" 315.75 ", 315.75),
        ("", 0.0),
        (None, 0.0),
        ("--", 0.0),
        ("n/a", 0.0),
    ],
)
def test_parse_amount(text, expected) -> None:
    assert parse_amount(text) == expected


def test_format_amount_uses_positional_notation() -> None:
    assert format_amount(1005.0) == "1005"
    assert format_amount(-94.17) == "-94.17"
    assert format_amount(1e-07) == "0.0000001"
    assert format_amount(12345678901234567.0) == "12345678901234568"


@pytest.mark.parametrize("value", [0.0, 1234.5, -565.0, 0.1 + 0.2, 1e-07, 3.14159])
def test_format_amount_reads_back_exactly(value) -> None:
    assert parse_amount(format_amount(value)) == value
