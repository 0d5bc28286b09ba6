from __future__ import annotations

import shlex
from pathlib import Path

import pytest

from bitforge.pipeline.shell import shell_quote, truncate


@pytest.mark.parametrize(
    "value",
    [
        "plain",
        "with space",
        "it's",
        "''",
        "$HOME `id` $(id)",
        "semi;colon && pipe | x",
        "new\nline",
        "",
    ],
)
def test_shell_quote_is_a_single_word(value: str) -> None:
    assert shlex.split(shell_quote(value)) == [value]


def test_shell_quote_escapes_single_quote() -> None:
    assert shell_quote("it's") == "'it'\\''s'"


def test_shell_quote_accepts_paths() -> None:
    assert shell_quote(Path("/tmp/my builds")) == "'/tmp/my builds'"


def test_truncate_shorter_text_unchanged() -> None:
    assert truncate("abc", 10) == "abc"


def test_truncate_cuts_to_limit() -> None:
    assert truncate("abcdefgh", 3) == "abc"
