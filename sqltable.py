# sqltable.py
"""
Plain-text result tables.

Rows are pulled one at a time from the cursor and written straight out, so a
large result set never sits in memory.
"""
import sys

from sqlerrors import RenderError

NULL_MARKER = "NULL"
SEPARATOR = " | "


def format_value(value):
    if value is None:
        return NULL_MARKER
    return str(value)


def format_row(values):
    return SEPARATOR.join(format_value(v) for v in values)


def render_table(columns, rows, out=None):
    """
    Write a header and one line per row; returns the number of rows written.
    No columns means nothing to show (e.g. a DDL statement run with -query).
    """
    out = out or sys.stdout
    columns = list(columns)
    if not columns:
        return 0

    header_line = SEPARATOR.join(columns)
    print(header_line, file=out)
    print("-" * len(header_line), file=out)

    written = 0
    it = iter(rows)
    while True:
        try:
            row = next(it)
        except StopIteration:
            break
        except Exception as e:
            raise RenderError(f"reading result row {written + 1}: {e}") from e
        print(format_row(row), file=out)
        written += 1
    return written
