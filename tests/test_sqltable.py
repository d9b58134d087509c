"""Tests for the plain-text result table."""

import io

import pytest

from sqlerrors import RenderError
from sqltable import render_table


def test_header_rule_and_rows():
    out = io.StringIO()
    n = render_table(["id", "name"], [(1, "ann"), (2, "bob")], out)
    assert n == 2
    assert out.getvalue().splitlines() == [
        "id | name",
        "---------",
        "1 | ann",
        "2 | bob",
    ]


def test_no_columns_renders_nothing():
    out = io.StringIO()
    assert render_table([], iter([]), out) == 0
    assert out.getvalue() == ""


def test_header_only_for_empty_result():
    out = io.StringIO()
    assert render_table(["a"], [], out) == 0
    assert out.getvalue().splitlines() == ["a", "-"]


def test_value_formatting():
    out = io.StringIO()
    render_table(["n", "r", "t", "b"], [(None, 1.5, "x", b"\x00\x01")], out)
    assert out.getvalue().splitlines()[-1] == "NULL | 1.5 | x | " + str(b"\x00\x01")


def test_rows_written_as_they_arrive():
    out = io.StringIO()
    seen = []

    def rows():
        yield (1,)
        seen.append(out.getvalue())
        yield (2,)

    render_table(["n"], rows(), out)
    assert seen == ["n\n-\n1\n"]


def test_row_failure_keeps_earlier_lines():
    out = io.StringIO()
    cause = ValueError("malformed")

    def rows():
        yield ("ok",)
        raise cause

    with pytest.raises(RenderError) as exc:
        render_table(["v"], rows(), out)
    assert exc.value.__cause__ is cause
    assert out.getvalue().splitlines() == ["v", "-", "ok"]
