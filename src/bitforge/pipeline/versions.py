from __future__ import annotations

import re

from bitforge.core.constants import CMAKE_MIN_MAJOR, BuildStrategy
from bitforge.core.exceptions import VersionTagError

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)")

_TAG_PUNCTUATION = frozenset(".-_")


def normalize_version(tag: str) -> str:
    """Strip leading ``v`` markers: ``"v24.0"`` → ``"24.0"``."""
    return tag.lstrip("v")


def parse_version(tag: str) -> tuple[int, int]:
    """Parse a tag into ``(major, minor)``; anything unparsable is ``(0, 0)``."""
    match = _VERSION_RE.match(normalize_version(tag))
    if match is None:
        return (0, 0)
    return (int(match.group(1)), int(match.group(2)))


def select_strategy(version: str) -> BuildStrategy:
    """Bitcoin Core 25 and later build with CMake; older releases use autotools."""
    major, _ = parse_version(version)
    if major >= CMAKE_MIN_MAJOR:
        return BuildStrategy.CMAKE
    return BuildStrategy.AUTOTOOLS


def is_valid_version_tag(tag: str) -> bool:
    return all((ch.isascii() and ch.isalnum()) or ch in _TAG_PUNCTUATION for ch in tag)


def validate_version_tag(tag: str) -> str:
    """Return *tag* unchanged if it is safe to interpolate into a shell command.

    Raises:
        VersionTagError: If *tag* has characters other than ASCII
            alphanumerics, ``.``, ``-`` and ``_``.
    """
    if not is_valid_version_tag(tag):
        raise VersionTagError(
            f"Version tag contains unexpected characters: {tag!r}",
            code="ERR_TAG",
            details={"tag": tag},
        )
    return tag
