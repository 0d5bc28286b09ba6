from __future__ import annotations

import pytest

from bitforge.app.log_buffer import LogBuffer


def test_append_counts_lines() -> None:
    buf = LogBuffer(max_lines=10)
    buf.append("one\ntwo\n")
    buf.append("three")
    assert buf.line_count == 2
    assert buf.text == "one\ntwo\nthree"


def test_no_trim_at_exact_limit() -> None:
    buf = LogBuffer(max_lines=4)
    buf.append("a\nb\nc\nd\n")
    assert buf.line_count == 4
    assert buf.text == "a\nb\nc\nd\n"


def test_trim_keeps_half_on_overflow() -> None:
    buf = LogBuffer(max_lines=4)
    buf.append("a\nb\nc\nd\n")
    buf.append("e\n")
    assert buf.line_count == 2
    assert buf.text == "d\ne\n"


def test_trim_keeps_partial_tail() -> None:
    buf = LogBuffer(max_lines=4)
    buf.append("1\n2\n3\n4\n5\npartial")
    assert buf.text == "4\n5\npartial"
    assert buf.line_count == 2


def test_trim_in_many_small_appends() -> None:
    buf = LogBuffer(max_lines=4000)
    for i in range(10_000):
        buf.append(f"line {i}\n")
        assert buf.line_count <= 4000
    assert buf.text.endswith("line 9999\n")
    assert buf.text.startswith("line ")
    assert buf.text.count("\n") == buf.line_count


def test_trim_starts_on_line_boundary() -> None:
    buf = LogBuffer(max_lines=6)
    buf.append("".join(f"row-{i}\n" for i in range(7)))
    assert buf.text.split("\n")[0] == "row-4"


def test_clear() -> None:
    buf = LogBuffer()
    buf.append("x\n")
    buf.clear()
    assert buf.text == ""
    assert len(buf) == 0


def test_max_lines_validated() -> None:
    with pytest.raises(ValueError):
        LogBuffer(max_lines=1)
