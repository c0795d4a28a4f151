"""
LRFINDER — Search Result Export

Serializes the unified records of a search to CSV for download.
"""

import csv
import io
import sys
from typing import Iterable, Optional

from search import UnifiedResultRecord

EXPORT_FILENAME = "search_results.csv"
EXPORT_MIMETYPE = "text/csv;charset=utf-8"
EMPTY_EXPORT_MESSAGE = "No search results to export."

EXPORT_COLUMNS = [
    "Source",
    "LR No",
    "Date",
    "Customer",
    "From Place",
    "To Place",
    "Quantity",
    "Amount",
    "Payment Method",
]


class EmptyExportError(ValueError):
    """Export requested with nothing to export."""


def _cell(value: Optional[object]) -> str:
    return "" if value is None else str(value)


def encode_results_csv(records: Optional[Iterable[UnifiedResultRecord]]) -> str:
    """Return CSV text: header line plus one line per record.

    Fields containing a comma, a double quote or a line break are quoted,
    with inner quotes doubled. Lines are joined with "\n" and the last
    record has no trailing line break.
    """
    records = list(records or [])
    if not records:
        raise EmptyExportError(EMPTY_EXPORT_MESSAGE)

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for r in records:
        writer.writerow([_cell(v) for v in r.as_row()])
    print(f"[EXPORT] {len(records)} records", file=sys.stderr)
    # csv.writer terminates every row; drop the final one
    return buf.getvalue()[:-1]
