"""Conversion between UTF-8 byte offsets and character offsets within a line."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from itertools import accumulate


def char_span(line: str, start: int, end: int) -> tuple[int, int]:
    """Convert the byte span ``[start, end)`` of *line* into a character span.

    Characters are counted in ``line[0:start]`` and ``line[start:end]`` of the
    UTF-8 encoding. Bytes of a character cut by either boundary are not counted.
    """

    encoded = line.encode("utf-8")
    prefix = len(encoded[:start].decode("utf-8", "ignore"))
    matched = len(encoded[start:end].decode("utf-8", "ignore"))
    return prefix, prefix + matched


class LineOffsets:
    """Prefix table of character boundaries for one line.

    ``bounds[i]`` is the byte offset at which character ``i`` starts and
    ``bounds[-1]`` is the encoded length, so every lookup is a bisection.
    """

    __slots__ = ("bounds",)

    def __init__(self, line: str) -> None:
        self.bounds = [0, *accumulate(len(ch.encode("utf-8")) for ch in line)]

    @property
    def char_length(self) -> int:
        return len(self.bounds) - 1

    @property
    def byte_length(self) -> int:
        return self.bounds[-1]

    def to_chars(self, start: int, end: int) -> tuple[int, int]:
        """Same result as :func:`char_span`, without rescanning the line."""

        prefix = bisect_right(self.bounds, start) - 1
        first = bisect_left(self.bounds, start)
        last = bisect_right(self.bounds, end) - 1
        return prefix, prefix + max(0, last - first)

    def to_bytes(self, start: int, end: int) -> tuple[int, int]:
        """Convert a character span into a byte span."""

        count = self.char_length
        return self.bounds[min(start, count)], self.bounds[min(end, count)]
