"""
Tests for tabular.py: CSV parsing, payment labels, rendering, filter and sort.
"""

import pytest

from tabular import (
    A_C, MAX_SORT_CLICKS, PAID, RAW, TO_PAY, DelimitedTable, SortState, apply_sort_click,
    compare_cells, filter_rows, format_payment, is_payment_column,
    _as_number, parse_csv_text, render_rows, render_table, replay_sort, sort_rows,
)


class TestParseCsvText:

    def test_headers_and_rows(self):
        table = parse_csv_text("A,B\n1,2\n3,4")
        assert table.headers == ("A", "B")
        assert table.rows == (("1", "2"), ("3", "4"))

    def test_crlf_line_endings(self):
        table = parse_csv_text("A,B\r\n1,2\r\n3,4\r\n")
        assert table.rows == (("1", "2"), ("3", "4"))

    def test_trailing_whitespace_trimmed(self):
        table = parse_csv_text("A,B\n1,2\n\n   \n")
        assert len(table) == 1

    def test_empty_text_has_no_headers(self):
        assert parse_csv_text("").headers == ()
        assert parse_csv_text("  \r\n ").rows == ()

    def test_header_only(self):
        table = parse_csv_text("A,B\n")
        assert table.headers == ("A", "B")
        assert table.rows == ()

    def test_quoted_commas_not_unescaped(self):
        table = parse_csv_text('A,B\n"x, y",2')
        assert table.rows[0] == ('"x', ' y"', "2")


class TestDelimitedTableLookup:

    def test_value_by_name(self):
        table = parse_csv_text("LR No,Date\nLR1,2024")
        assert table.value(table.rows[0], "Date") == "2024"

    def test_missing_column_reads_empty(self):
        table = parse_csv_text("LR No,Date\nLR1,2024")
        assert table.value(table.rows[0], "Amount") == ""
        assert not table.has_column("Amount")

    def test_short_row_reads_empty(self):
        table = parse_csv_text("A,B,C\n1")
        assert table.value(table.rows[0], "C") == ""

    def test_duplicate_header_uses_first(self):
        table = DelimitedTable(headers=("A", "A"), rows=(("x", "y"),))
        assert table.column_index("A") == 0
        assert table.value(table.rows[0], "A") == "x"


class TestFormatPayment:

    @pytest.mark.parametrize("raw,kind,text", [
        ("paid", PAID, "PAID"),
        ("2", PAID, "PAID"),
        ("To Pay", TO_PAY, "TO PAY"),
        ("1", TO_PAY, "TO PAY"),
        ("A/C", A_C, "A/C"),
        ("a\\c", A_C, "A/C"),
        ("3", A_C, "A/C"),
    ])
    def test_known_tokens(self, raw, kind, text):
        shown = format_payment(raw)
        assert shown.kind == kind
        assert shown.text == text

    def test_whitespace_and_case_ignored(self):
        assert format_payment("  PAID ").kind == PAID

    def test_unknown_passes_through(self):
        shown = format_payment("cheque")
        assert shown.kind == RAW
        assert shown.text == "cheque"
        assert shown.to_html() == "cheque"

    def test_no_prefix_matching(self):
        assert format_payment("paid later").kind == RAW
        assert format_payment("22").kind == RAW

    def test_none_is_empty_passthrough(self):
        assert format_payment(None).text == ""

    def test_label_round_trips(self):
        for raw in ("paid", "to pay", "a/c"):
            label = format_payment(raw).text
            assert format_payment(label.lower()).text == label

    def test_passthrough_is_idempotent(self):
        once = format_payment("Bank transfer").text
        assert format_payment(once).text == once

    def test_markup_carries_class(self):
        assert format_payment("1").to_html() == '<span class="pay-topay">TO PAY</span>'


class TestRenderRows:

    def test_payment_column_detection(self):
        assert is_payment_column("Payment Method")
        assert is_payment_column("PAYMENT")
        assert not is_payment_column("Amount")

    def test_payment_cells_formatted_others_verbatim(self):
        table = parse_csv_text("Name,Payment Method\n<b>Acme</b>,2")
        rendered = render_rows(table)
        name, pay = rendered.rows[0]
        assert name.html == "<b>Acme</b>"
        assert pay.text == "PAID"
        assert pay.html == '<span class="pay-paid">PAID</span>'

    def test_escape_mode(self):
        table = parse_csv_text("Name,Payment Method\n<b>Acme</b>,<i>x</i>")
        rendered = render_rows(table, escape=True)
        assert rendered.rows[0][0].html == "&lt;b&gt;Acme&lt;/b&gt;"
        assert rendered.rows[0][1].html == "&lt;i&gt;x&lt;/i&gt;"

    def test_render_table_markup(self):
        table = parse_csv_text("A,B\n1,2")
        html = render_table(render_rows(table), table_id="t1", header_links=["?sort=0", "?sort=1"])
        assert '<table id="t1">' in html
        assert '<a class="sort" href="?sort=0">A</a>' in html
        assert "<tr><td>1</td><td>2</td></tr>" in html


class TestFilterRows:

    def setup_method(self):
        table = parse_csv_text("Name,City,Payment Method\nAcme,Pune,2\nBeta,Mumbai,1")
        self.rendered = render_rows(table)

    def test_empty_query_keeps_all(self):
        assert len(filter_rows(self.rendered, "").rows) == 2

    def test_case_insensitive(self):
        rows = filter_rows(self.rendered, "PUNE").rows
        assert [r[0].text for r in rows] == ["Acme"]

    def test_matches_displayed_payment_label(self):
        rows = filter_rows(self.rendered, "to pay").rows
        assert [r[0].text for r in rows] == ["Beta"]

    def test_matches_across_concatenated_cells(self):
        rows = filter_rows(self.rendered, "acmepune").rows
        assert len(rows) == 1


class TestSorting:

    def setup_method(self):
        table = parse_csv_text("Name,Qty\nbeta,10\nalpha,9\ngamma,100")
        self.rendered = render_rows(table)

    def _names(self, rendered):
        return [r[0].text for r in rendered.rows]

    def test_numeric_column(self):
        out = sort_rows(self.rendered, 1, ascending=True)
        assert self._names(out) == ["alpha", "beta", "gamma"]

    def test_numeric_descending(self):
        out = sort_rows(self.rendered, 1, ascending=False)
        assert self._names(out) == ["gamma", "beta", "alpha"]

    def test_string_column(self):
        out = sort_rows(self.rendered, 0, ascending=True)
        assert self._names(out) == ["alpha", "beta", "gamma"]

    def test_mixed_values_compare_as_text(self):
        assert compare_cells("10", "9x") < 0
        assert compare_cells("10", "9") > 0

    def test_empty_is_not_numeric(self):
        assert compare_cells("", "5") < 0

    def test_toggle_per_column_is_independent(self):
        state = SortState()
        out, state = apply_sort_click(self.rendered, state, 0)
        assert self._names(out) == ["alpha", "beta", "gamma"]
        # clicking another column does not reset column 0
        out, state = apply_sort_click(out, state, 1)
        out, state = apply_sort_click(out, state, 0)
        assert self._names(out) == ["gamma", "beta", "alpha"]
        out, state = apply_sort_click(out, state, 0)
        assert self._names(out) == ["alpha", "beta", "gamma"]

    def test_out_of_range_column_ignored(self):
        out, state = apply_sort_click(self.rendered, SortState(), 7)
        assert out == self.rendered
        assert state == SortState()

    def test_state_encoding(self):
        state = SortState().clicked(3).clicked(1).clicked(3)
        assert state.encode() == "3a,1a,3d"
        assert SortState.decode("3a,1a,x,,3d") == state
        assert SortState.decode(None) == SortState()

    def test_clicks_capped(self):
        state = SortState()
        for _ in range(MAX_SORT_CLICKS + 5):
            state = state.clicked(0)
        assert len(state.clicks) == MAX_SORT_CLICKS


class TestSortReplay:

    def setup_method(self):
        table = parse_csv_text("LR No,Place\nLR3,x\nLR1,x\nLR2,y")
        self.rendered = render_rows(table)

    def _lrs(self, rendered):
        return [r[0].text for r in rendered.rows]

    def test_second_click_breaks_ties_by_first(self):
        out, state = apply_sort_click(self.rendered, SortState(), 0)
        out, state = apply_sort_click(out, state, 1)
        assert self._lrs(out) == ["LR1", "LR3", "LR2"]
        assert state.encode() == "0a,1a"

    def test_replay_on_fresh_rows_matches_clicks(self):
        state = SortState.decode("0a,1a")
        assert self._lrs(replay_sort(self.rendered, state)) == ["LR1", "LR3", "LR2"]

    def test_replay_skips_unknown_columns(self):
        assert replay_sort(self.rendered, SortState.decode("9a")) == self.rendered


class TestCellComparison:

    def test_accented_text_sorts_by_base_letter(self):
        assert compare_cells("éclair", "fig") < 0
        assert compare_cells("Éclair", "eclair") != 0
        assert compare_cells("fig", "éclair") > 0

    @pytest.mark.parametrize("text", ["inf", "nan", "infinity", "1_000", "5 kg", "0x", "+0x1", ""])
    def test_not_numbers(self, text):
        assert _as_number(text) is None

    @pytest.mark.parametrize("text, expected", [
        ("0x1f", 31.0), ("0b101", 5.0), ("0o17", 15.0), ("-2.5e1", -25.0), (" 7 ", 7.0), ("\t", 0.0),
    ])
    def test_numbers(self, text, expected):
        assert _as_number(text) == expected

    def test_underscore_digits_compare_as_text(self):
        # as numbers 1000 > 2; as text "1_000" < "2"
        assert compare_cells("1_000", "2") < 0

    def test_radix_literals_are_numbers(self):
        assert compare_cells("0x10", "9") > 0
        assert compare_cells("0b11", "2") > 0
        assert compare_cells("0o10", "7") > 0

    def test_whitespace_only_is_zero(self):
        # numeric: 0 > -1; as text " " would sort before "-"
        assert compare_cells("  ", "-1") > 0

    def test_decimal_forms(self):
        assert compare_cells(" 5 ", "10") < 0
        assert compare_cells(".5", "0.4") > 0
        assert compare_cells("1e3", "999") > 0
        assert compare_cells("5.", "5") == 0
