"""Project tree traversal with Markly's exclusion rules."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIX = ".md"
EXCLUDED_DIRECTORY_NAMES = frozenset({"node_modules"})
EXCLUDED_DIRECTORY_SUFFIX = ".assets"


def is_excluded(name: str, is_dir: bool) -> bool:
    """Return ``True`` when an entry called *name* must not be visited."""

    if name.startswith("."):
        return True
    if is_dir:
        return name in EXCLUDED_DIRECTORY_NAMES or name.endswith(EXCLUDED_DIRECTORY_SUFFIX)
    return False


def walk_project(root: Path) -> Iterator[Path]:
    """Yield every regular file below *root* that survives the exclusion rules.

    Excluded directories are pruned before descent, so nothing beneath them is
    ever listed. The rules apply to *root* itself too, so a root such as
    ``.notes`` or ``.`` yields nothing. Symlinks are not followed. The order is
    the directory enumeration order and is not sorted.
    """

    if not root.is_dir():
        return
    # Path(".").name is empty; the entry is then named by the whole path
    if is_excluded(root.name or str(root), is_dir=True):
        return
    yield from _walk(root)


def _walk(directory: Path) -> Iterator[Path]:
    try:
        with os.scandir(directory) as it:
            entries = list(it)
    except OSError as exc:
        logger.debug("Skipping unreadable directory %s: %s", directory, exc)
        return

    for entry in entries:
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
            is_file = entry.is_file(follow_symlinks=False)
        except OSError:
            continue
        if is_excluded(entry.name, is_dir):
            continue
        path = directory / entry.name
        if is_dir:
            yield from _walk(path)
        elif is_file:
            yield path


def iter_markdown_files(root: Path) -> Iterator[Path]:
    """Yield the markdown notes below *root* in walk order."""

    for path in walk_project(root):
        if path.suffix == MARKDOWN_SUFFIX:
            yield path
