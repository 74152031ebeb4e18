"""Wiki-link extraction and resolution for markdown notes."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .search import split_lines
from .walker import MARKDOWN_SUFFIX, iter_markdown_files

logger = logging.getLogger(__name__)

WIKI_LINK_PATTERN = re.compile(r"\[\[([^\[\]]+?)\]\]")
FENCE_PATTERN = re.compile(r"^ {0,3}(`{3,}|~{3,})")
INLINE_CODE_PATTERN = re.compile(r"(`+)(?!`).+?(?<!`)\1(?!`)")


@dataclass(frozen=True, slots=True)
class WikiLink:
    """A ``[[target]]`` token; offsets are characters within its line."""

    target: str
    line_number: int
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class LinkTarget:
    link: WikiLink
    path: Path | None

    def as_payload(self) -> dict[str, Any]:
        return {
            "target": self.link.target,
            "line_number": self.link.line_number,
            "start": self.link.start,
            "end": self.link.end,
            "path": str(self.path) if self.path is not None else None,
        }


def normalize_link_target(link_name: str) -> str:
    """Append the markdown suffix unless *link_name* already has it."""

    if link_name.endswith(MARKDOWN_SUFFIX):
        return link_name
    return f"{link_name}{MARKDOWN_SUFFIX}"


def resolve_wiki_link(
    root: Path | None, link_name: str, current_file_path: Path
) -> Path | None:
    """Resolve *link_name* to a note path, or ``None`` when nothing matches.

    Resolution order:

    1. A target containing ``/`` or ``\\`` is taken relative to the directory of
       *current_file_path* and nothing else is tried.
    2. A note with that name next to *current_file_path*.
    3. The first note with that exact file name found while walking *root*.
       Duplicate names are decided by traversal order. Skipped when *root* is
       ``None``.
    """

    if not link_name.strip():
        return None

    target = normalize_link_target(link_name)

    current_dir = current_file_path.parent
    if current_dir == current_file_path:
        return None

    candidate = current_dir / target
    if "/" in target or "\\" in target:
        return candidate if candidate.is_file() else None

    if candidate.is_file():
        return candidate

    if root is None:
        return None
    for path in iter_markdown_files(root):
        if path.name == target:
            return path

    logger.debug("No note named %r under %s", target, root)
    return None


def _code_spans(line: str) -> list[tuple[int, int]]:
    return [match.span() for match in INLINE_CODE_PATTERN.finditer(line)]


def find_wiki_links(text: str) -> list[WikiLink]:
    """Return the wiki links of *text*, skipping fenced blocks and inline code."""

    links: list[WikiLink] = []
    fence: str | None = None
    for line_number, line in enumerate(split_lines(text), start=1):
        opener = FENCE_PATTERN.match(line)
        if fence is not None:
            if opener and opener.group(1)[0] == fence[0] and len(opener.group(1)) >= len(fence):
                if not line[opener.end() :].strip():
                    fence = None
            continue
        if opener:
            fence = opener.group(1)
            continue

        code = _code_spans(line)
        for match in WIKI_LINK_PATTERN.finditer(line):
            start, end = match.span()
            if any(start < code_end and code_start < end for code_start, code_end in code):
                continue
            links.append(WikiLink(match.group(1), line_number, start, end))
    return links


def link_report(root: Path | None, note_path: Path) -> list[LinkTarget]:
    """Resolve every wiki link of the note at *note_path*.

    Raises ``OSError`` or ``UnicodeDecodeError`` when the note cannot be read.
    """

    content = note_path.read_bytes().decode("utf-8")
    return [
        LinkTarget(link, resolve_wiki_link(root, link.target, note_path))
        for link in find_wiki_links(content)
    ]
