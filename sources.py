"""
LRFINDER — Dataset Sources

Declared schemas for the two record sets (bookings, received) and the
loader that reads each CSV fresh on every call, either from a local data
directory or from an HTTP base URL with a cache-busting parameter.
"""

import os
import sys
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv
load_dotenv()

import requests

from tabular import DelimitedTable, parse_csv_text

# ─── Configuration ────────────────────────────────────────────────────────────

DATA_SOURCE = os.environ.get("LRFINDER_DATA_SOURCE", "data")
FETCH_TIMEOUT = float(os.environ.get("LRFINDER_FETCH_TIMEOUT", "30"))
CSV_ENCODING = os.environ.get("LRFINDER_CSV_ENCODING", "utf-8")

# Match kinds for filter fields
CONTAINS = "contains"   # case-insensitive substring
EXACT = "exact"         # trimmed string equality, case-sensitive


class DatasetLoadError(RuntimeError):
    """A dataset could not be fetched or read."""


# ─── Schemas ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DatasetSchema:
    """One record set and which filter fields apply to it.

    `filter_columns` maps filter key -> (column name, match kind). A filter
    key absent from the map is never checked against this dataset.
    `record_columns` maps unified record field -> column name; None means
    the field does not exist in this dataset and exports as "".
    """
    key: str
    source: str
    filename: str
    columns: Tuple[str, ...]
    filter_columns: Dict[str, Tuple[str, str]]
    record_columns: Dict[str, Optional[str]]


BOOKINGS = DatasetSchema(
    key="bookings",
    source="Booking",
    filename="bookings.csv",
    columns=(
        "LR No", "Date", "From Customer", "To Customer", "To Place",
        "Quantity", "Amount", "Payment Method",
    ),
    filter_columns={
        "lr_no": ("LR No", CONTAINS),
        "date": ("Date", CONTAINS),
        "from_customer": ("From Customer", CONTAINS),
        "to_customer": ("To Customer", CONTAINS),
        "to_place": ("To Place", CONTAINS),
        "quantity": ("Quantity", EXACT),
        "amount": ("Amount", EXACT),
        "payment_method": ("Payment Method", EXACT),
    },
    record_columns={
        "lr_no": "LR No",
        "date": "Date",
        "customer": "To Customer",
        "from_place": None,
        "to_place": "To Place",
        "quantity": "Quantity",
        "amount": "Amount",
        "payment_method": "Payment Method",
    },
)

RECEIVED = DatasetSchema(
    key="received",
    source="Received",
    filename="received.csv",
    columns=(
        "LR No", "Date", "To Customer", "From Place", "To Place",
        "Quantity", "Amount", "Payment Method",
    ),
    filter_columns={
        "lr_no": ("LR No", CONTAINS),
        "date": ("Date", CONTAINS),
        "to_customer": ("To Customer", CONTAINS),
        "from_place": ("From Place", CONTAINS),
        "to_place": ("To Place", CONTAINS),
        "quantity": ("Quantity", EXACT),
        "amount": ("Amount", EXACT),
        "payment_method": ("Payment Method", EXACT),
    },
    record_columns={
        "lr_no": "LR No",
        "date": "Date",
        "customer": "To Customer",
        "from_place": "From Place",
        "to_place": "To Place",
        "quantity": "Quantity",
        "amount": "Amount",
        "payment_method": "Payment Method",
    },
)

DATASETS: Dict[str, DatasetSchema] = {s.key: s for s in (BOOKINGS, RECEIVED)}


# ─── Loading ─────────────────────────────────────────────────────────────────

def _is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def fetch_text(schema: DatasetSchema, source: Optional[str] = None) -> str:
    """Read the raw CSV text for a dataset. Never cached."""
    source = DATA_SOURCE if source is None else source
    if _is_url(source):
        url = f"{source.rstrip('/')}/{schema.filename}"
        try:
            resp = requests.get(
                url,
                params={"nocache": int(time.time() * 1000)},
                timeout=FETCH_TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            raise DatasetLoadError(f"{schema.filename}: {e}") from e
        if resp.status_code != 200:
            raise DatasetLoadError(f"{schema.filename}: HTTP {resp.status_code}")
        return resp.text

    path = os.path.join(source, schema.filename)
    if not os.path.exists(path):
        raise DatasetLoadError(f"{schema.filename}: not found at {path}")
    try:
        with open(path, "r", encoding=CSV_ENCODING, newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise DatasetLoadError(f"{schema.filename}: {e}") from e


def load_dataset(schema: DatasetSchema, source: Optional[str] = None) -> DelimitedTable:
    """Fetch and parse one dataset."""
    text = fetch_text(schema, source)
    table = parse_csv_text(text)
    missing = [c for c in schema.columns if not table.has_column(c)]
    if missing and table.headers:
        print(f"[SOURCES] {schema.filename} missing columns: {', '.join(missing)}", file=sys.stderr)
    return table
