#!/usr/bin/env python3
"""
LRFINDER — Web Interface

Browse and search the logistics record sets (bookings.csv, received.csv).
Simple pages show one dataset with free-text filtering and sortable
columns; the home page runs a structured search across both datasets and
exports the matches as search_results.csv.

Usage:
    set LRFINDER_DATA_SOURCE=data            (directory or http(s) base URL)
    python app.py
"""

import hashlib
import locale
import os
import secrets
import sys
from html import escape as html_escape
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlencode

from dotenv import load_dotenv
load_dotenv()

from flask import Flask, request, Response, jsonify, session, abort

from exporter import (
    EXPORT_FILENAME, EXPORT_MIMETYPE, EmptyExportError, encode_results_csv,
)
from search import (
    EMPTY_FILTERS_MESSAGE, FilterSet, ResultStore, SearchValidationError, reset_view, run_search,
)
from sources import BOOKINGS, DATASETS, RECEIVED, DatasetLoadError, load_dataset
from tabular import (
    RenderedTable, SortState, apply_sort_click, filter_rows, render_rows, render_table,
    replay_sort,
)

# ─── App Configuration ───────────────────────────────────────────────────────

app = Flask(__name__)
# Stable secret key: FLASK_SECRET_KEY env var, or derived from the data source
# so sessions survive restarts of the same deployment
_stable_seed = os.environ.get("LRFINDER_DATA_SOURCE", "")
app.secret_key = os.environ.get("FLASK_SECRET_KEY") or (
    hashlib.sha256(f"lrfinder-session::{_stable_seed}".encode()).hexdigest()
    if _stable_seed else secrets.token_hex(32)
)

ESCAPE_CELLS = os.environ.get("LRFINDER_ESCAPE_CELLS", "1").strip().lower() not in ("0", "false", "no", "")
MAX_STORED_SEARCHES = int(os.environ.get("LRFINDER_MAX_STORED_SEARCHES", "200"))

# Text columns sort by the host locale, like the browser does
try:
    locale.setlocale(locale.LC_COLLATE, "")
except locale.Error as e:
    print(f"[CONFIG] Locale collation unavailable, using default: {e}", file=sys.stderr)

# Last committed search per browser session
results = ResultStore(max_entries=MAX_STORED_SEARCHES)


def _client_id() -> str:
    """Per-session owner key for the result store."""
    cid = session.get("client_id")
    if not cid:
        cid = secrets.token_hex(16)
        session["client_id"] = cid
    return cid


# ─── Sidebar Navigation ─────────────────────────────────────────────────────

_SIDEBAR_CSS = """
  .sidebar { position:fixed; top:0; left:0; width:220px; height:100vh; background:#0a0a0a; border-right:1px solid #1a1a1a; display:flex; flex-direction:column; z-index:100; }
  .sidebar-logo { padding:20px 24px; border-bottom:1px solid #1a1a1a; font-weight:700; color:#eab308; letter-spacing:1px; }
  .sidebar-section { padding:16px 12px 4px; }
  .sidebar-label { font-size:10px; color:#525252; text-transform:uppercase; letter-spacing:1px; padding:0 12px; margin-bottom:4px; font-weight:600; }
  .sidebar-nav { display:flex; flex-direction:column; }
  .sidebar-nav a { display:flex; align-items:center; gap:10px; padding:9px 12px; color:#a3a3a3; text-decoration:none; font-size:13px; border-radius:6px; border-left:3px solid transparent; margin:1px 0; }
  .sidebar-nav a:hover { color:#f5f5f5; background:#141414; }
  .sidebar-nav a.active { color:#f5f5f5; background:#141414; border-left-color:#eab308; }
  .main-content { margin-left:220px; min-height:100vh; }
  @media (max-width:768px) {
    .sidebar { position:static; width:auto; height:auto; }
    .main-content { margin-left:0; }
  }
"""

_SIDEBAR_NAV_ITEMS = [
    ("Search", [
        ("search", "/", "Advanced Search"),
    ]),
    ("Records", [
        ("bookings", "/bookings", "Bookings"),
        ("received", "/received", "Received"),
    ]),
]


def _build_sidebar_html(active):
    """Build sidebar HTML. `active` = page key like 'search', 'bookings'."""
    sections = ""
    for group_label, items in _SIDEBAR_NAV_ITEMS:
        links = ""
        for key, href, label in items:
            cls = ' class="active"' if key == active else ""
            links += f'      <a href="{href}"{cls}>{label}</a>\n'
        sections += (
            f'  <div class="sidebar-section">\n'
            f'    <div class="sidebar-label">{group_label}</div>\n'
            f'    <nav class="sidebar-nav">\n{links}    </nav>\n'
            f'  </div>\n'
        )
    return (
        '<aside class="sidebar" id="sidebar">\n'
        '  <div class="sidebar-logo"><a href="/" style="color:inherit;text-decoration:none;">LRFINDER</a></div>\n'
        f'{sections}'
        '</aside>\n'
    )


def _inject_sidebar(html, active):
    """Replace {{SIDEBAR_HTML}} and {{SIDEBAR_CSS}} placeholders."""
    html = html.replace("{{SIDEBAR_CSS}}", _SIDEBAR_CSS)
    html = html.replace("{{SIDEBAR_HTML}}", _build_sidebar_html(active))
    return html


# ─── Table Helpers ───────────────────────────────────────────────────────────

def _sort_links(base: str, params: Dict[str, str], state: SortState, ncols: int) -> List[str]:
    """One link per header; each carries the clicks made so far."""
    links = []
    encoded = state.encode()
    for col in range(ncols):
        qs = dict(params)
        qs["sort"] = str(col)
        if encoded:
            qs["order"] = encoded
        links.append(f"{base}?{urlencode(qs)}")
    return links


def _sorted_view(rendered: RenderedTable) -> Tuple[RenderedTable, SortState]:
    """Replay ?order= onto fresh rows, then apply the ?sort= click, if any."""
    state = SortState.decode(request.args.get("order"))
    rendered = replay_sort(rendered, state)
    sort = request.args.get("sort", "").strip()
    if sort.isdigit():
        rendered, state = apply_sort_click(rendered, state, int(sort))
    return rendered, state


def load_table_page(csv_name: str, table_id: str, search_box_id: Optional[str] = None) -> str:
    """Generic single-dataset page: full table, optional search box, sortable headers."""
    schema = next((s for s in DATASETS.values() if s.filename == csv_name), None)
    if schema is None:
        abort(404)

    error = ""
    try:
        table = load_dataset(schema)
        rendered = render_rows(table, escape=ESCAPE_CELLS)
    except DatasetLoadError as e:
        print(f"[PAGE] CSV Load Error: {e}", file=sys.stderr)
        error = "Could not load " + csv_name
        rendered = RenderedTable((), ())

    query = request.args.get("q", "") if search_box_id else ""
    total = len(rendered.rows)
    rendered = filter_rows(rendered, query)
    rendered, state = _sorted_view(rendered)

    params = {"q": query} if query else {}
    links = _sort_links(request.path, params, state, len(rendered.headers))
    table_html = render_table(rendered, table_id=table_id, header_links=links, escape=ESCAPE_CELLS)

    if search_box_id:
        # a new query keeps the current sort
        order = state.encode()
        order_html = f'<input type="hidden" name="order" value="{order}">' if order else ""
        search_html = (
            f'<form method="get" class="search-form">'
            f'<input type="text" id="{search_box_id}" name="q" placeholder="Search..." '
            f'value="{html_escape(query)}" autocomplete="off">{order_html}</form>'
        )
    else:
        search_html = ""

    html = _inject_sidebar(TABLE_PAGE_HTML, schema.key)
    html = html.replace("{{TITLE}}", schema.key.capitalize())
    html = html.replace("{{SEARCH_BOX}}", search_html)
    html = html.replace("{{COUNT}}", f"{len(rendered.rows)} of {total} rows")
    html = html.replace("{{ERROR}}", f'<p class="error">{error}</p>' if error else "")
    html = html.replace("{{TABLE}}", table_html)
    return html


# ─── Routes: Pages ───────────────────────────────────────────────────────────

@app.route("/")
def index():
    html = _inject_sidebar(INDEX_HTML, "search")
    html = html.replace("{{INITIAL_MESSAGE}}", reset_view().message)
    return html


@app.route("/bookings")
def bookings_page():
    return load_table_page(BOOKINGS.filename, "bookingsTable", "bookingsSearch")


@app.route("/received")
def received_page():
    return load_table_page(RECEIVED.filename, "receivedTable", "receivedSearch")


# ─── Routes: Advanced Search ─────────────────────────────────────────────────

def _result_table_html(key: str, rendered: Optional[RenderedTable], state: SortState) -> str:
    if rendered is None:
        return ""
    links = _sort_links(f"/api/search/table/{key}", {}, state, len(rendered.headers))
    table_id = "searchBookingsTable" if key == BOOKINGS.key else "searchReceivedTable"
    return render_table(rendered, table_id=table_id, header_links=links, escape=ESCAPE_CELLS)


@app.route("/api/search", methods=["POST"])
def api_search():
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        data = {}
    filters = FilterSet.from_mapping(data)
    if filters.is_empty():
        return jsonify({"error": EMPTY_FILTERS_MESSAGE}), 400

    owner = _client_id()
    generation = results.begin(owner)
    try:
        result = run_search(filters)
    except SearchValidationError as e:
        return jsonify({"error": str(e)}), 400

    current = results.commit(owner, generation, result)
    bookings = result.bookings.rendered(ESCAPE_CELLS) if result.bookings else None
    received = result.received.rendered(ESCAPE_CELLS) if result.received else None

    payload = result.view().to_dict()
    payload.update({
        "generation": generation,
        "stale": not current,
        "count": len(result.records),
        "bookings_count": result.bookings.count if result.bookings else 0,
        "received_count": result.received.count if result.received else 0,
        "bookings_html": _result_table_html(BOOKINGS.key, bookings, SortState()),
        "received_html": _result_table_html(RECEIVED.key, received, SortState()),
        "records": [r.to_dict() for r in result.records],
    })
    return jsonify(payload)


@app.route("/api/search/table/<key>")
def api_search_table(key):
    """Re-render one result table of the last search in its sorted order."""
    if key not in DATASETS:
        return jsonify({"error": "Unknown table"}), 404
    result = results.latest(_client_id())
    matches = getattr(result, key, None) if result else None
    rendered = matches.rendered(ESCAPE_CELLS) if matches else None
    if rendered is None:
        return jsonify({"html": ""})
    rendered, state = _sorted_view(rendered)
    return jsonify({"html": _result_table_html(key, rendered, state)})


@app.route("/api/search/reset", methods=["POST"])
def api_search_reset():
    results.clear(_client_id())
    payload = reset_view().to_dict()
    payload["filters"] = FilterSet().to_dict()
    return jsonify(payload)


@app.route("/api/export")
def api_export():
    result = results.latest(_client_id())
    try:
        content = encode_results_csv(result.records if result else None)
    except EmptyExportError as e:
        return jsonify({"error": str(e)}), 400
    return Response(
        content,
        content_type=EXPORT_MIMETYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"',
        },
    )


# ─── HTML Templates ──────────────────────────────────────────────────────────

_TABLE_STYLE = """
  table { width: 100%; border-collapse: collapse; font-size: 12px; }
  th { background: #111111; color: #a3a3a3; text-transform: uppercase; font-size: 10px; padding: 8px 6px; text-align: left; position: sticky; top: 0; border-bottom: 2px solid #262626; }
  th a.sort { color: inherit; text-decoration: none; cursor: pointer; }
  th a.sort:hover { color: #eab308; }
  td { padding: 6px; border-bottom: 1px solid #1a1a1a; color: #d4d4d4; }
  tr:hover td { background: #111111; }
  .table-wrap { max-height: 600px; overflow: auto; border: 1px solid #262626; border-radius: 8px; }
  .pay-paid { color: #34d399; font-weight: 700; }
  .pay-topay { color: #f87171; font-weight: 700; }
  .pay-ac { color: #67e8f9; font-weight: 700; }
  .error { color: #f87171; margin-bottom: 12px; font-size: 13px; }
"""

TABLE_PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>LRFINDER - {{TITLE}}</title>
<style>
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: 'SF Mono', 'Consolas', monospace; background: #121212; color: #f5f5f5; min-height: 100vh; }
  {{SIDEBAR_CSS}}
  .container { max-width: 1400px; margin: 0 auto; padding: 24px; }
  h2 { font-size: 16px; margin-bottom: 12px; color: #d4d4d4; }
  .toolbar { display: flex; gap: 12px; align-items: center; margin-bottom: 16px; }
  .search-form input { padding: 8px 12px; background: #000000; border: 1px solid #333333; border-radius: 6px; color: #f5f5f5; font-family: inherit; font-size: 13px; width: 320px; outline: none; }
  .search-form input:focus { border-color: #eab308; }
  .result-count { color: #a3a3a3; font-size: 13px; margin-left: auto; }
""" + _TABLE_STYLE + """
</style>
</head>
<body>
{{SIDEBAR_HTML}}
<div class="main-content">
<div class="container">
  <h2>{{TITLE}}</h2>
  <div class="toolbar">
    {{SEARCH_BOX}}
    <span class="result-count">{{COUNT}}</span>
  </div>
  {{ERROR}}
  <div class="table-wrap">
{{TABLE}}
  </div>
</div>
</div>
</body>
</html>"""

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>LRFINDER - Advanced Search</title>
<style>
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: 'SF Mono', 'Consolas', monospace; background: #121212; color: #f5f5f5; min-height: 100vh; }
  {{SIDEBAR_CSS}}
  .container { max-width: 1400px; margin: 0 auto; padding: 24px; }

  .filters { background: #111111; border: 1px solid #262626; border-radius: 12px; padding: 24px; margin-bottom: 24px; }
  .filters h2 { font-size: 16px; margin-bottom: 4px; color: #d4d4d4; }
  .filters .subtitle { font-size: 12px; color: #737373; margin-bottom: 16px; }
  .filter-grid { display: grid; grid-template-columns: repeat(3, 1fr); gap: 10px; }
  .fg { display: flex; flex-direction: column; gap: 3px; }
  .fg label { font-size: 10px; color: #a3a3a3; text-transform: uppercase; letter-spacing: 0.5px; }
  .fg input { padding: 7px 10px; background: #000000; border: 1px solid #333333; border-radius: 6px; color: #f5f5f5; font-family: inherit; font-size: 12px; outline: none; }
  .fg input:focus { border-color: #eab308; }

  .controls { display: flex; gap: 12px; margin-top: 16px; align-items: center; padding-top: 12px; border-top: 1px solid #262626; }
  .controls button { padding: 10px 24px; border: none; border-radius: 8px; font-size: 14px; font-weight: 600; cursor: pointer; font-family: inherit; }
  .btn-primary { background: #ffd900; color: #000000; }
  .btn-primary:hover { background: #ca8a04; }
  .btn-secondary { background: #262626; color: #a3a3a3; }
  .btn-export { background: #ffd900; color: #000000; display: none; }
  .result-count { color: #a3a3a3; font-size: 13px; margin-left: auto; }

  .results-section { display: none; margin-bottom: 24px; }
  .results-section h3 { font-size: 13px; color: #eab308; text-transform: uppercase; margin-bottom: 8px; }
  #noResultsMsg { color: #a3a3a3; font-size: 13px; padding: 16px 0; }
""" + _TABLE_STYLE + """
</style>
</head>
<body>
{{SIDEBAR_HTML}}
<div class="main-content">
<div class="container">
  <div class="filters">
    <h2>Advanced Search</h2>
    <p class="subtitle">All filled fields must match | From Customer searches bookings only, From Place searches received only</p>
    <div class="filter-grid">
      <div class="fg"><label>LR No</label><input id="f_lr_no"></div>
      <div class="fg"><label>Date</label><input id="f_date"></div>
      <div class="fg"><label>From Customer</label><input id="f_from_customer"></div>
      <div class="fg"><label>To Customer</label><input id="f_to_customer"></div>
      <div class="fg"><label>From Place</label><input id="f_from_place"></div>
      <div class="fg"><label>To Place</label><input id="f_to_place"></div>
      <div class="fg"><label>Quantity</label><input id="f_quantity"></div>
      <div class="fg"><label>Amount</label><input id="f_amount"></div>
      <div class="fg"><label>Payment Method</label><input id="f_payment_method"></div>
    </div>
    <div class="controls">
      <button class="btn-primary" onclick="advancedSearch()">Search</button>
      <button class="btn-secondary" onclick="resetAdvancedSearch()">Reset</button>
      <button class="btn-export" id="exportBtn" onclick="exportSearchResults()">Export CSV</button>
      <span class="result-count" id="resultCount"></span>
    </div>
  </div>

  <div id="noResultsMsg">{{INITIAL_MESSAGE}}</div>

  <div class="results-section" id="bookingsResultsSection">
    <h3>Bookings</h3>
    <div class="table-wrap" id="bookingsResults"></div>
  </div>
  <div class="results-section" id="receivedResultsSection">
    <h3>Received</h3>
    <div class="table-wrap" id="receivedResults"></div>
  </div>
</div>
</div>

<script>
const FIELDS = ['lr_no','date','from_customer','to_customer','to_place',
                'from_place','quantity','amount','payment_method'];
let searchSeq = 0;

function el(id) { return document.getElementById(id); }
function getVal(id) { const e = el(id); return e ? e.value.trim() : ''; }
function show(id, on, mode) { const e = el(id); if (e) e.style.display = on ? (mode || 'block') : 'none'; }

function applyView(v) {
  show('bookingsResultsSection', v.bookings_visible);
  show('receivedResultsSection', v.received_visible);
  const msg = el('noResultsMsg');
  if (msg) {
    msg.style.display = v.message_visible ? 'block' : 'none';
    msg.innerHTML = v.message;
  }
  show('exportBtn', v.export_enabled, 'inline-block');
}

function setTable(containerId, html) {
  const box = el(containerId);
  if (box) box.innerHTML = html || '';
}

function advancedSearch() {
  const body = {};
  FIELDS.forEach(f => { body[f] = getVal('f_' + f); });
  if (FIELDS.every(f => !body[f])) { alert('Enter at least one field to search.'); return; }

  const seq = ++searchSeq;
  const count = el('resultCount');
  if (count) count.textContent = 'Searching...';

  fetch('/api/search', {method:'POST', headers:{'Content-Type':'application/json'}, body:JSON.stringify(body)})
    .then(r => r.json()).then(data => {
      if (seq !== searchSeq || data.stale) return;
      if (data.error) { alert(data.error); if (count) count.textContent = ''; return; }
      setTable('bookingsResults', data.bookings_html);
      setTable('receivedResults', data.received_html);
      applyView(data);
      if (count) count.textContent = data.count + ' results';
    })
    .catch(err => { console.error('Search failed', err); });
}

function resetAdvancedSearch() {
  searchSeq++;
  FIELDS.forEach(f => { const e = el('f_' + f); if (e) e.value = ''; });
  setTable('bookingsResults', '');
  setTable('receivedResults', '');
  const count = el('resultCount');
  if (count) count.textContent = '';
  fetch('/api/search/reset', {method:'POST'}).then(r => r.json()).then(applyView);
}

function exportSearchResults() {
  fetch('/api/export').then(r => {
    if (!r.ok) return r.json().then(d => { alert(d.error || 'No search results to export.'); });
    return r.blob().then(blob => {
      const url = URL.createObjectURL(blob);
      const a = document.createElement('a');
      a.href = url;
      a.download = 'search_results.csv';
      document.body.appendChild(a);
      a.click();
      document.body.removeChild(a);
      URL.revokeObjectURL(url);
    });
  });
}

// Sorting inside result tables: header links re-render that table server-side
document.addEventListener('click', ev => {
  const link = ev.target.closest('.results-section th a.sort');
  if (!link) return;
  ev.preventDefault();
  const box = link.closest('.table-wrap');
  fetch(link.getAttribute('href')).then(r => r.json()).then(d => { if (box) box.innerHTML = d.html || ''; });
});
</script>
</body>
</html>"""

# ─── Run ──────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    from sources import DATA_SOURCE
    port = int(os.environ.get("PORT", 5000))
    print(f"Data source: {DATA_SOURCE}", file=sys.stderr)
    print(f"LRFINDER Web UI starting on http://localhost:{port}", file=sys.stderr)
    app.run(host="0.0.0.0", port=port, debug=False, threaded=True)
