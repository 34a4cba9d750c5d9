"""Tests for result rows and table rendering."""

from mqtt_latency.report import HEADERS, format_table, render_table, result_rows
from mqtt_latency.stats import NS_PER_MS, reduce_samples

MS = NS_PER_MS


def _results():
    r = reduce_samples([1 * MS, 2 * MS, 3 * MS])
    return {("local", 0): r, ("local", 1): r, ("remote vm", 0): r}


def test_rows_blank_repeated_target_names():
    rows = result_rows(_results())
    assert [row[:2] for row in rows] == [("local", "0"), ("", "1"), ("remote vm", "0")]


def test_rows_carry_formatted_durations():
    row = result_rows(_results())[0]
    assert row[2:] == ("  1.00 ms", "  3.00 ms", "  2.00 ms", "  2.90 ms", "  2.98 ms")


def test_table_columns_aligned():
    lines = format_table(result_rows(_results()))

    assert lines[0].startswith("| Configuration")
    assert all(h in lines[0] for h in HEADERS)
    assert len({len(line) for line in lines}) == 1


def test_render_table_prints_every_row(capsys):
    render_table(result_rows(_results()))
    out = capsys.readouterr().out
    assert "Latency Comparison Table" in out
    assert out.count("2.98 ms") == 3
