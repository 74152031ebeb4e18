"""Full-text search over the markdown notes of a project."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .matching import build_matcher
from .walker import iter_markdown_files

logger = logging.getLogger(__name__)

MAX_RESULTS = 1000
MAX_LINE_CHARS = 500


@dataclass(frozen=True, slots=True)
class SearchMatch:
    """A single occurrence of the query, with character offsets for highlighting."""

    file_path: str
    file_name: str
    line_number: int
    line_content: str
    match_start: int
    match_end: int

    def as_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class FileMatches:
    """Matches of one file, in the order they were found."""

    file_path: str
    file_name: str
    matches: list[SearchMatch] = field(default_factory=list)

    def as_payload(self) -> dict[str, Any]:
        return {
            "file_path": self.file_path,
            "file_name": self.file_name,
            "matches": [match.as_payload() for match in self.matches],
        }


def split_lines(text: str) -> list[str]:
    """Split on ``\\n``, dropping one trailing ``\\r`` per line and the empty tail."""

    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _read_note(path: Path) -> str | None:
    try:
        return path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Skipping unreadable note %s: %s", path, exc)
        return None


def search_project(
    root: Path,
    query: str,
    case_sensitive: bool,
    use_regex: bool,
    max_results: int = MAX_RESULTS,
    timeout: float | None = None,
) -> list[SearchMatch]:
    """Search every markdown note below *root* for *query*.

    Raises :class:`~markly_mcp.matching.InvalidPatternError` when *use_regex* is
    set and the query does not compile, and
    :class:`~markly_mcp.matching.SearchTimeoutError` when regular-expression
    matching runs longer than *timeout* seconds in total. Unreadable notes are
    skipped. At most ``min(max_results, MAX_RESULTS)`` matches are returned.
    """

    if not query:
        return []
    if not root.is_dir():
        return []

    limit = min(max_results, MAX_RESULTS)
    matcher = build_matcher(query, case_sensitive, use_regex, timeout)

    results: list[SearchMatch] = []
    if limit <= 0:
        return results

    for path in iter_markdown_files(root):
        content = _read_note(path)
        if content is None:
            continue
        file_path = str(path)
        for line_number, line in enumerate(split_lines(content), start=1):
            spans = matcher.find_char_spans(line)
            if not spans:
                continue
            display_line = line[:MAX_LINE_CHARS]
            for match_start, match_end in spans:
                results.append(
                    SearchMatch(
                        file_path=file_path,
                        file_name=path.name,
                        line_number=line_number,
                        line_content=display_line,
                        match_start=match_start,
                        match_end=match_end,
                    )
                )
                if len(results) >= limit:
                    logger.debug("Search for %r stopped at %d matches", query, limit)
                    return results

    logger.debug("Search for %r under %s found %d matches", query, root, len(results))
    return results


def group_by_file(matches: list[SearchMatch]) -> list[FileMatches]:
    """Group *matches* per file, keeping first-seen file order."""

    groups: dict[str, FileMatches] = {}
    for match in matches:
        group = groups.get(match.file_path)
        if group is None:
            group = groups[match.file_path] = FileMatches(match.file_path, match.file_name)
        group.matches.append(match)
    return list(groups.values())
