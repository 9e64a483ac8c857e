"""Serialise packed bill rows to CSV artifacts."""

from __future__ import annotations

import csv
import io
import os
from pathlib import Path
from typing import Any, Iterable, List, Sequence

from . import config
from .amounts import format_amount
from .items import LineItem
from .listing import BillRecord
from .utils import ensure_dirs, log_line

COLUMNS: List[str] = [
    "tradeDate",
    "valueDate",
    "voucherNo",
    "segment",
    "scrip",
    "buyQty",
    "buyAvg",
    "buyAmt",
    "sellQty",
    "sellAvg",
    "sellAmt",
    "netQty",
    "netAvg",
    "netAmt",
    "debit",
    "credit",
    "narration",
    "rowType",
]
ITEM_ROW_TYPE = "ITEM"


def pack_row(record: BillRecord, item: LineItem) -> List[Any]:
    """Combine one bill with one of its line items, in ``COLUMNS`` order."""

    return [
        record.trade_date,
        record.value_date,
        record.voucher_no,
        record.segment,
        item.scrip,
        item.buy_qty,
        item.buy_avg,
        item.buy_amount,
        item.sell_qty,
        item.sell_avg,
        item.sell_amount,
        item.net_qty,
        item.net_avg,
        item.net_amount,
        record.debit,
        record.credit,
        record.narration,
        ITEM_ROW_TYPE,
    ]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return format_amount(value)
    return str(value)


def rows_to_csv(rows: Iterable[Sequence[Any]]) -> str:
    """Render ``rows`` with a header line; fields are quoted only when needed."""

    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(COLUMNS)
    for row in rows:
        writer.writerow([_cell(value) for value in row])
    return output.getvalue()


def range_filename(start: int, end: int) -> str:
    """Name for an export covering records ``start`` .. ``end - 1``."""

    return f"{config.EXPORT_PREFIX}_{start}-{end - 1}.csv"


def partial_filename(row_count: int) -> str:
    return f"{config.EXPORT_PREFIX}_partial_{row_count}rows.csv"


def write_export(rows: Sequence[Sequence[Any]], filename: str) -> Path:
    """Write ``rows`` as CSV under ``EXPORTS_DIR`` and return the path."""

    ensure_dirs()
    path = config.EXPORTS_DIR / filename
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(rows_to_csv(rows), encoding="utf-8")
    tmp_path.replace(path)
    log_line(f"[EXPORT] Wrote {len(rows)} rows -> {path}")
    prune_old_exports()
    return path


def prune_old_exports() -> None:
    exports_dir = config.EXPORTS_DIR
    files = sorted(
        (exports_dir / p for p in os.listdir(exports_dir) if p.endswith(".csv")),
        key=lambda p: p.stat().st_mtime,
    )
    while len(files) > config.EXPORTS_KEEP_MAX:
        old = files.pop(0)
        try:
            old.unlink()
        except OSError:
            continue


__all__ = [
    "COLUMNS",
    "ITEM_ROW_TYPE",
    "pack_row",
    "rows_to_csv",
    "range_filename",
    "partial_filename",
    "write_export",
    "prune_old_exports",
]
