from __future__ import annotations


class LogBuffer:
    """Append-only build log capped at ``max_lines`` lines.

    When an append pushes the line count past the cap, the oldest lines are
    dropped in one step so that exactly ``max_lines // 2`` complete lines
    remain.  Text after the last newline (a line still being written) is
    kept and not counted.
    """

    def __init__(self, max_lines: int = 4000) -> None:
        if max_lines < 2:
            raise ValueError("max_lines must be at least 2")
        self.max_lines = max_lines
        self.trim_to = max_lines // 2
        self._text = ""
        self._line_count = 0

    def __repr__(self) -> str:
        return f"LogBuffer(lines={self._line_count}, max_lines={self.max_lines})"

    def __len__(self) -> int:
        return self._line_count

    @property
    def text(self) -> str:
        return self._text

    @property
    def line_count(self) -> int:
        return self._line_count

    def append(self, text: str) -> None:
        self._text += text
        self._line_count += text.count("\n")
        if self._line_count > self.max_lines:
            drop = self._line_count - self.trim_to
            self._text = self._text.split("\n", drop)[drop]
            self._line_count = self.trim_to

    def clear(self) -> None:
        self._text = ""
        self._line_count = 0
