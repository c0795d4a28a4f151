"""
LRFINDER — Table Model, Payment Labels & Rendering

Turns raw CSV text into a DelimitedTable, formats payment-status cells,
renders tables to HTML, and implements the free-text row filter and
per-column sort used on the simple pages and the search results.
"""

import locale
import re
import unicodedata
from dataclasses import dataclass, field
from functools import cmp_to_key
from html import escape as html_escape
from typing import Dict, Iterable, Optional, Sequence, Tuple


# ─── CSV Parser ──────────────────────────────────────────────────────────────

_LINE_BREAK = re.compile(r"\r?\n")


@dataclass(frozen=True)
class DelimitedTable:
    """Parsed CSV: header names plus rows of string fields.

    Lookup by column name goes through an index built once at construction.
    A missing column or a short row reads as "".
    """
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]
    _index: Dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        index: Dict[str, int] = {}
        for i, name in enumerate(self.headers):
            # first occurrence wins, same as list.index()
            index.setdefault(name, i)
        object.__setattr__(self, "_index", index)

    def column_index(self, name: str) -> Optional[int]:
        return self._index.get(name)

    def has_column(self, name: str) -> bool:
        return name in self._index

    def value(self, row: Sequence[str], name: str) -> str:
        idx = self._index.get(name)
        if idx is None or idx >= len(row):
            return ""
        return row[idx] or ""

    def __len__(self) -> int:
        return len(self.rows)


def parse_csv_text(text: str) -> DelimitedTable:
    """Split raw CSV text into headers and rows.

    Plain comma split, no quote handling. Empty or whitespace-only text
    gives a table with no headers and no rows.
    """
    text = (text or "").strip()
    if not text:
        return DelimitedTable(headers=(), rows=())
    lines = _LINE_BREAK.split(text)
    headers = tuple(lines[0].split(","))
    rows = tuple(tuple(line.split(",")) for line in lines[1:])
    return DelimitedTable(headers=headers, rows=rows)


# ─── Payment Formatter ───────────────────────────────────────────────────────

PAID = "PAID"
TO_PAY = "TO_PAY"
A_C = "A_C"
RAW = "RAW"

# kind -> (accepted tokens, display label, css class)
PAYMENT_CODES = {
    PAID: (("paid", "2"), "PAID", "pay-paid"),
    TO_PAY: (("to pay", "1"), "TO PAY", "pay-topay"),
    A_C: (("a/c", "a\\c", "3"), "A/C", "pay-ac"),
}

_TOKEN_TO_KIND = {
    token: kind
    for kind, (tokens, _label, _css) in PAYMENT_CODES.items()
    for token in tokens
}


@dataclass(frozen=True)
class PaymentDisplay:
    kind: str
    text: str

    @property
    def css_class(self) -> str:
        if self.kind == RAW:
            return ""
        return PAYMENT_CODES[self.kind][2]

    def to_html(self, escape: bool = False) -> str:
        if self.kind == RAW:
            return html_escape(self.text) if escape else self.text
        return f'<span class="{self.css_class}">{self.text}</span>'


def format_payment(value: Optional[str]) -> PaymentDisplay:
    """Map a raw payment token to its display label.

    Matching is exact against the known tokens after trimming and
    lowercasing; anything else passes through unchanged.
    """
    raw = "" if value is None else str(value)
    kind = _TOKEN_TO_KIND.get(raw.strip().lower())
    if kind is None:
        return PaymentDisplay(RAW, raw)
    return PaymentDisplay(kind, PAYMENT_CODES[kind][1])


def is_payment_column(header: str) -> bool:
    return "payment" in (header or "").lower()


# ─── Table Renderer ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Cell:
    text: str
    html: str


@dataclass(frozen=True)
class RenderedTable:
    """Display form of a table: what the page shows, cell by cell."""
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[Cell, ...], ...]

    def with_rows(self, rows: Iterable[Sequence[Cell]]) -> "RenderedTable":
        return RenderedTable(self.headers, tuple(tuple(r) for r in rows))


def render_rows(
    table: DelimitedTable,
    rows: Optional[Iterable[Sequence[str]]] = None,
    escape: bool = False,
) -> RenderedTable:
    """Build display rows, passing payment columns through the formatter.

    Other cells are kept verbatim unless `escape` is set.
    """
    payment_cols = {i for i, h in enumerate(table.headers) if is_payment_column(h)}
    source = table.rows if rows is None else rows
    out = []
    for row in source:
        cells = []
        for idx, raw in enumerate(row):
            if idx in payment_cols:
                shown = format_payment(raw)
                cells.append(Cell(shown.text, shown.to_html(escape=escape)))
            else:
                cells.append(Cell(raw, html_escape(raw) if escape else raw))
        out.append(tuple(cells))
    return RenderedTable(tuple(table.headers), tuple(out))


def render_table(
    rendered: RenderedTable,
    table_id: str = "",
    header_links: Optional[Sequence[str]] = None,
    escape: bool = False,
) -> str:
    """Produce a full <table> element; replaces whatever was there before."""
    id_attr = f' id="{html_escape(table_id)}"' if table_id else ""
    ths = []
    for i, h in enumerate(rendered.headers):
        label = html_escape(h) if escape else h
        if header_links and i < len(header_links):
            ths.append(f'<th><a class="sort" href="{html_escape(header_links[i])}">{label}</a></th>')
        else:
            ths.append(f"<th>{label}</th>")
    body = []
    for row in rendered.rows:
        tds = "".join(f"<td>{c.html}</td>" for c in row)
        body.append(f"<tr>{tds}</tr>")
    return (
        f"<table{id_attr}>\n"
        f"<thead><tr>{''.join(ths)}</tr></thead>\n"
        f"<tbody>\n" + "\n".join(body) + "\n</tbody>\n"
        f"</table>"
    )


# ─── Simple Search / Sort ────────────────────────────────────────────────────

def filter_rows(rendered: RenderedTable, query: str) -> RenderedTable:
    """Keep rows whose concatenated cell text contains `query` (any case)."""
    needle = (query or "").lower()
    if not needle:
        return rendered
    return rendered.with_rows(
        row for row in rendered.rows
        if needle in "".join(c.text for c in row).lower()
    )


MAX_SORT_CLICKS = 200

_SORT_CLICK = re.compile(r"(\d+)([ad])")


@dataclass(frozen=True)
class SortState:
    """Header clicks so far, oldest first, as (column, ascending).

    Each column toggles on its own: its next click sorts opposite to its
    last one, ascending if it was never clicked. Replaying the clicks in
    order reproduces the row order, ties included.
    """
    clicks: Tuple[Tuple[int, bool], ...] = ()

    def next_ascending(self, col: int) -> bool:
        for c, ascending in reversed(self.clicks):
            if c == col:
                return not ascending
        return True

    def clicked(self, col: int) -> "SortState":
        clicks = self.clicks + ((col, self.next_ascending(col)),)
        return SortState(clicks[-MAX_SORT_CLICKS:])

    def encode(self) -> str:
        return ",".join(f"{c}{'a' if asc else 'd'}" for c, asc in self.clicks)

    @classmethod
    def decode(cls, raw: Optional[str]) -> "SortState":
        clicks = []
        for part in (raw or "").split(","):
            m = _SORT_CLICK.fullmatch(part.strip())
            if m:
                clicks.append((int(m.group(1)), m.group(2) == "a"))
        return cls(tuple(clicks[-MAX_SORT_CLICKS:]))


# Number() accepts these after trimming; anything else is NaN
_JS_DECIMAL = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?", re.IGNORECASE | re.ASCII)
_JS_RADIX = re.compile(r"0(?:x[0-9a-f]+|o[0-7]+|b[01]+)", re.IGNORECASE)


def _as_number(text: str) -> Optional[float]:
    """Numeric value of a cell, or None when it is not a number.

    "" is never numeric; whitespace-only text counts as 0.
    """
    if text == "":
        return None
    s = text.strip().strip("\ufeff")
    if not s:
        return 0.0
    if _JS_DECIMAL.fullmatch(s):
        return float(s)
    if _JS_RADIX.fullmatch(s):
        return float(int(s, 0))
    return None


def _fold(text: str) -> str:
    """Drop accents so base letters decide the order first."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def compare_text(x: str, y: str) -> int:
    result = locale.strcoll(_fold(x), _fold(y))
    if result == 0:
        result = locale.strcoll(x, y)
    return (result > 0) - (result < 0)


def compare_cells(x: str, y: str, ascending: bool = True) -> int:
    """Numeric when both sides parse as numbers, collation otherwise."""
    x, y = x.lower(), y.lower()
    nx, ny = _as_number(x), _as_number(y)
    if nx is not None and ny is not None:
        result = (nx > ny) - (nx < ny)
    else:
        result = compare_text(x, y)
    return result if ascending else -result


def sort_rows(rendered: RenderedTable, col: int, ascending: bool = True) -> RenderedTable:
    def _cell(row: Sequence[Cell]) -> str:
        return row[col].text if col < len(row) else ""

    key = cmp_to_key(lambda a, b: compare_cells(_cell(a), _cell(b), ascending))
    return rendered.with_rows(sorted(rendered.rows, key=key))


def replay_sort(rendered: RenderedTable, state: SortState) -> RenderedTable:
    """Re-apply every recorded click, oldest first."""
    for col, ascending in state.clicks:
        if 0 <= col < len(rendered.headers):
            rendered = sort_rows(rendered, col, ascending)
    return rendered


def apply_sort_click(
    rendered: RenderedTable, state: SortState, col: int
) -> Tuple[RenderedTable, SortState]:
    """One header click on rows already in `state`'s order."""
    if col < 0 or col >= len(rendered.headers):
        return rendered, state
    return sort_rows(rendered, col, state.next_ascending(col)), state.clicked(col)
