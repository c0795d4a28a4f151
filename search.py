"""
LRFINDER — Advanced Search Engine

Structured search across bookings and received:
  - AND logic over up to 9 filter fields (empty field = no constraint)
  - contains matching for text fields, exact trimmed equality for
    quantity / amount / payment method
  - from_customer alone => bookings only; from_place alone => received only
  - matched rows from both datasets unified into one record list for export

Both datasets load concurrently; a failure in one is logged and that
dataset contributes no matches.
"""

import asyncio
import sys
import threading
from collections import OrderedDict
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from sources import BOOKINGS, RECEIVED, CONTAINS, DatasetSchema, load_dataset
from tabular import DelimitedTable, RenderedTable, render_rows

EMPTY_FILTERS_MESSAGE = "Enter at least one field to search."
NO_RESULTS_MESSAGE = "No matching records found."
INITIAL_MESSAGE = "Enter search values above and press <b>Search</b>."

Loader = Callable[[DatasetSchema], DelimitedTable]


class SearchValidationError(ValueError):
    """Raised before any fetch when no filter field is set."""


# ─── Filters & Scope ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FilterSet:
    lr_no: str = ""
    date: str = ""
    from_customer: str = ""
    to_customer: str = ""
    to_place: str = ""
    from_place: str = ""
    quantity: str = ""
    amount: str = ""
    payment_method: str = ""

    @classmethod
    def keys(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "FilterSet":
        """Build from form/JSON input. Values are trimmed; unknown keys ignored."""
        data = data or {}
        values = {}
        for key in cls.keys():
            raw = data.get(key)
            values[key] = "" if raw is None else str(raw).strip()
        return cls(**values)

    def get(self, key: str) -> str:
        return getattr(self, key, "")

    def is_empty(self) -> bool:
        return not any(self.get(k) for k in self.keys())

    def to_dict(self) -> Dict[str, str]:
        return {k: self.get(k) for k in self.keys()}


@dataclass(frozen=True)
class ScopeDecision:
    search_bookings: bool = True
    search_received: bool = True

    def schemas(self) -> List[DatasetSchema]:
        out = []
        if self.search_bookings:
            out.append(BOOKINGS)
        if self.search_received:
            out.append(RECEIVED)
        return out


def decide_scope(filters: FilterSet) -> ScopeDecision:
    """Which datasets to search.

    With both from_customer and from_place set, both datasets stay in scope
    and each one simply ignores the field it does not carry.
    """
    search_bookings = True
    search_received = True
    if filters.from_customer and not filters.from_place:
        search_received = False
    if filters.from_place and not filters.from_customer:
        search_bookings = False
    return ScopeDecision(search_bookings, search_received)


# ─── Matching ────────────────────────────────────────────────────────────────

def row_matches(
    schema: DatasetSchema, table: DelimitedTable, row: Sequence[str], filters: FilterSet
) -> bool:
    for key, (column, kind) in schema.filter_columns.items():
        wanted = filters.get(key)
        if not wanted:
            continue
        cell = table.value(row, column)
        if kind == CONTAINS:
            if wanted.lower() not in cell.lower():
                return False
        elif cell.strip() != wanted:
            return False
    return True


# ─── Unified Records ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class UnifiedResultRecord:
    source: str
    lr_no: str = ""
    date: str = ""
    customer: str = ""
    from_place: str = ""
    to_place: str = ""
    quantity: str = ""
    amount: str = ""
    payment_method: str = ""

    def as_row(self) -> List[str]:
        return [getattr(self, f.name) for f in fields(self)]

    def to_dict(self) -> Dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def to_record(schema: DatasetSchema, table: DelimitedTable, row: Sequence[str]) -> UnifiedResultRecord:
    values = {
        name: table.value(row, column) if column else ""
        for name, column in schema.record_columns.items()
    }
    return UnifiedResultRecord(source=schema.source, **values)


@dataclass(frozen=True)
class DatasetMatches:
    schema: DatasetSchema
    table: Optional[DelimitedTable]
    rows: Tuple[Tuple[str, ...], ...] = ()
    error: str = ""

    @property
    def count(self) -> int:
        return len(self.rows)

    @property
    def visible(self) -> bool:
        return self.count > 0

    def records(self) -> List[UnifiedResultRecord]:
        if self.table is None:
            return []
        return [to_record(self.schema, self.table, r) for r in self.rows]

    def rendered(self, escape: bool = False) -> Optional[RenderedTable]:
        if self.table is None or not self.rows:
            return None
        return render_rows(self.table, self.rows, escape=escape)


# ─── Presentation State ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class SearchView:
    bookings_visible: bool
    received_visible: bool
    message: str
    message_visible: bool
    export_enabled: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookings_visible": self.bookings_visible,
            "received_visible": self.received_visible,
            "message": self.message,
            "message_visible": self.message_visible,
            "export_enabled": self.export_enabled,
        }


def reset_view() -> SearchView:
    """State after Reset: sections hidden, instructions shown, export off."""
    return SearchView(
        bookings_visible=False,
        received_visible=False,
        message=INITIAL_MESSAGE,
        message_visible=True,
        export_enabled=False,
    )


@dataclass(frozen=True)
class SearchResult:
    filters: FilterSet
    scope: ScopeDecision
    bookings: Optional[DatasetMatches]
    received: Optional[DatasetMatches]
    records: Tuple[UnifiedResultRecord, ...]

    @property
    def any_results(self) -> bool:
        return len(self.records) > 0

    def view(self) -> SearchView:
        return SearchView(
            bookings_visible=bool(self.bookings and self.bookings.visible),
            received_visible=bool(self.received and self.received.visible),
            message="" if self.any_results else NO_RESULTS_MESSAGE,
            message_visible=not self.any_results,
            export_enabled=self.any_results,
        )


# ─── Engine ──────────────────────────────────────────────────────────────────

async def _search_dataset(
    schema: DatasetSchema, filters: FilterSet, loader: Loader
) -> DatasetMatches:
    try:
        table = await asyncio.to_thread(loader, schema)
    except Exception as e:
        print(f"[SEARCH] Error loading {schema.filename}: {e}", file=sys.stderr)
        return DatasetMatches(schema, None, (), error=str(e))
    matches = tuple(
        tuple(row) for row in table.rows if row_matches(schema, table, row, filters)
    )
    return DatasetMatches(schema, table, matches)


async def advanced_search(filters: FilterSet, loader: Loader = load_dataset) -> SearchResult:
    """Run one search. Raises SearchValidationError when every field is empty."""
    if filters.is_empty():
        raise SearchValidationError(EMPTY_FILTERS_MESSAGE)

    scope = decide_scope(filters)
    schemas = scope.schemas()
    outcomes = await asyncio.gather(*(_search_dataset(s, filters, loader) for s in schemas))
    by_key = {o.schema.key: o for o in outcomes}

    bookings = by_key.get(BOOKINGS.key)
    received = by_key.get(RECEIVED.key)
    records: List[UnifiedResultRecord] = []
    for outcome in (bookings, received):
        if outcome is not None:
            records.extend(outcome.records())

    print(
        f"[SEARCH] bookings={bookings.count if bookings else '-'} "
        f"received={received.count if received else '-'}",
        file=sys.stderr,
    )
    return SearchResult(filters, scope, bookings, received, tuple(records))


def run_search(filters: FilterSet, loader: Loader = load_dataset) -> SearchResult:
    """Synchronous entry point for request handlers."""
    return asyncio.run(advanced_search(filters, loader))


# ─── Result Store ────────────────────────────────────────────────────────────

class ResultStore:
    """Latest committed search result per owner (browser session).

    `begin` issues a generation number; `commit` drops a result whose
    generation is older than the newest one begun for that owner.
    """

    def __init__(self, max_entries: int = 200):
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._generations: Dict[str, int] = {}
        self._results: "OrderedDict[str, Tuple[int, SearchResult]]" = OrderedDict()

    def begin(self, owner: str) -> int:
        with self._lock:
            gen = self._generations.get(owner, 0) + 1
            self._generations[owner] = gen
            return gen

    def commit(self, owner: str, generation: int, result: SearchResult) -> bool:
        with self._lock:
            if generation != self._generations.get(owner):
                print(f"[SEARCH] Dropping stale result (gen {generation}) for {owner[:8]}", file=sys.stderr)
                return False
            self._results[owner] = (generation, result)
            self._results.move_to_end(owner)
            while len(self._results) > self.max_entries:
                old_owner, _ = self._results.popitem(last=False)
                self._generations.pop(old_owner, None)
            return True

    def latest(self, owner: str) -> Optional[SearchResult]:
        with self._lock:
            entry = self._results.get(owner)
            return entry[1] if entry else None

    def clear(self, owner: str) -> None:
        """Forget the owner's result; any in-flight search becomes stale."""
        with self._lock:
            self._results.pop(owner, None)
            self._generations[owner] = self._generations.get(owner, 0) + 1
