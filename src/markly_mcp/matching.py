"""Line matchers used by the project search."""

from __future__ import annotations

import time
from dataclasses import dataclass

import regex

from .offsets import LineOffsets


class InvalidPatternError(ValueError):
    """Raised when a regular-expression query does not compile."""


class SearchTimeoutError(RuntimeError):
    """Raised when regular-expression matching exceeds the search budget."""


@dataclass(frozen=True, slots=True)
class PlainMatcher:
    """Substring matcher working on the UTF-8 encoding of each line.

    In case-insensitive mode both the needle and the line are lower-cased
    first, and the span length is the length of the lower-cased needle. When
    lower-casing changes the encoded length of a character the spans are
    therefore measured against text that differs from the original line.
    """

    needle: bytes
    case_sensitive: bool

    def find_spans(self, line: str) -> list[tuple[int, int]]:
        haystack = (line if self.case_sensitive else line.lower()).encode("utf-8")
        width = len(self.needle)
        spans: list[tuple[int, int]] = []
        position = haystack.find(self.needle)
        while position != -1:
            spans.append((position, position + width))
            position = haystack.find(self.needle, position + width)
        return spans

    def find_char_spans(self, line: str) -> list[tuple[int, int]]:
        spans = self.find_spans(line)
        if not spans:
            return []
        offsets = LineOffsets(line)
        return [offsets.to_chars(start, end) for start, end in spans]


@dataclass(frozen=True, slots=True)
class RegexMatcher:
    """Matcher backed by a compiled :mod:`regex` pattern.

    When *deadline* (a :func:`time.monotonic` value) is set, matching past it
    raises :class:`SearchTimeoutError`.
    """

    pattern: regex.Pattern
    deadline: float | None = None

    def _remaining(self) -> float | None:
        if self.deadline is None:
            return None
        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise SearchTimeoutError("Regular expression search timed out")
        return remaining

    def find_char_spans(self, line: str) -> list[tuple[int, int]]:
        try:
            # zero-width matches carry nothing to highlight
            return [
                match.span()
                for match in self.pattern.finditer(line, timeout=self._remaining())
                if match.end() > match.start()
            ]
        except TimeoutError as exc:
            raise SearchTimeoutError("Regular expression search timed out") from exc

    def find_spans(self, line: str) -> list[tuple[int, int]]:
        found = self.find_char_spans(line)
        if not found:
            return []
        offsets = LineOffsets(line)
        return [offsets.to_bytes(start, end) for start, end in found]


Matcher = PlainMatcher | RegexMatcher


def build_matcher(
    query: str, case_sensitive: bool, use_regex: bool, timeout: float | None = None
) -> Matcher:
    """Create the matcher for *query*.

    ``find_spans`` returns UTF-8 byte offsets into the line and
    ``find_char_spans`` the matching character offsets. *timeout* bounds the
    total time a regular-expression matcher may spend matching.
    """

    if use_regex:
        flags = 0 if case_sensitive else regex.IGNORECASE
        try:
            pattern = regex.compile(query, flags)
        except regex.error as exc:
            raise InvalidPatternError(str(exc)) from exc
        deadline = time.monotonic() + timeout if timeout is not None else None
        return RegexMatcher(pattern, deadline)

    needle = query if case_sensitive else query.lower()
    return PlainMatcher(needle.encode("utf-8"), case_sensitive)
