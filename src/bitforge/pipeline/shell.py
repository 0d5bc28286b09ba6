from __future__ import annotations

from os import PathLike


def shell_quote(value: str | PathLike[str]) -> str:
    """Wrap *value* in single quotes for POSIX ``sh``.

    Embedded single quotes close the quote, add an escaped quote, and reopen
    it: ``it's`` → ``'it'\\''s'``.
    """
    text = str(value)
    return "'" + text.replace("'", "'\\''") + "'"


def truncate(text: str, max_chars: int) -> str:
    """Return at most the first *max_chars* characters of *text*."""
    return text[:max_chars]
