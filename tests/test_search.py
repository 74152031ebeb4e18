from pathlib import Path

import pytest

from markly_mcp.matching import InvalidPatternError
from markly_mcp.search import (
    MAX_LINE_CHARS,
    MAX_RESULTS,
    group_by_file,
    search_project,
    split_lines,
)


def _write_note(path: Path, body: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")


def test_empty_query_does_not_touch_filesystem(tmp_path, monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("filesystem accessed")

    monkeypatch.setattr(Path, "is_dir", _fail)
    assert search_project(tmp_path, "", False, False) == []
    assert search_project(tmp_path, "", False, True) == []


def test_missing_root_returns_empty(tmp_path):
    assert search_project(tmp_path / "missing", "hello", False, False) == []


def test_hello_world_example(tmp_path):
    note = tmp_path / "note.md"
    _write_note(note, "Hello world\n")

    results = search_project(tmp_path, "world", False, False)
    assert len(results) == 1
    match = results[0]
    assert match.file_path == str(note)
    assert match.file_name == "note.md"
    assert match.line_number == 1
    assert match.line_content == "Hello world"
    assert (match.match_start, match.match_end) == (6, 11)


def test_line_numbers_and_intra_line_order(tmp_path):
    _write_note(tmp_path / "note.md", "first\r\nfoo and foo\n\nlast foo")

    results = search_project(tmp_path, "foo", True, False)
    assert [(m.line_number, m.match_start, m.match_end) for m in results] == [
        (2, 0, 3),
        (2, 8, 11),
        (4, 5, 8),
    ]
    assert results[0].line_content == "foo and foo"


def test_offsets_are_characters(tmp_path):
    _write_note(tmp_path / "note.md", "日本語のノート: needle\n")

    (match,) = search_project(tmp_path, "needle", False, False)
    assert (match.match_start, match.match_end) == (9, 15)
    assert match.line_content[match.match_start : match.match_end] == "needle"


def test_regex_offsets_are_characters(tmp_path):
    _write_note(tmp_path / "note.md", "café Café CAFÉ")

    results = search_project(tmp_path, r"caf\w", False, True)
    assert [(m.match_start, m.match_end) for m in results] == [(0, 4), (5, 9), (10, 14)]


def test_invalid_regex_is_an_error(tmp_path):
    _write_note(tmp_path / "note.md", "anything")

    with pytest.raises(InvalidPatternError):
        search_project(tmp_path, "[", False, True)


def test_excluded_locations_never_match(tmp_path):
    _write_note(tmp_path / "visible.md", "needle")
    _write_note(tmp_path / ".hidden" / "note.md", "needle")
    _write_note(tmp_path / ".note.md", "needle")
    _write_note(tmp_path / "node_modules" / "note.md", "needle")
    _write_note(tmp_path / "images.assets" / "note.md", "needle")
    _write_note(tmp_path / "plain.txt", "needle")

    results = search_project(tmp_path, "needle", False, False)
    assert [m.file_name for m in results] == ["visible.md"]


def test_unreadable_files_are_skipped(tmp_path):
    (tmp_path / "binary.md").write_bytes(b"needle \xff\xfe")
    _write_note(tmp_path / "good.md", "needle")

    results = search_project(tmp_path, "needle", False, False)
    assert [m.file_name for m in results] == ["good.md"]


def test_long_lines_are_truncated(tmp_path):
    line = "x" * 600 + "needle"
    _write_note(tmp_path / "note.md", f"{line}\nneedle")

    results = search_project(tmp_path, "needle", False, False)
    assert all(len(m.line_content) <= MAX_LINE_CHARS for m in results)
    # the match lies past the truncated display text
    assert results[0].match_start == 600
    assert results[0].line_content == "x" * MAX_LINE_CHARS


def test_results_are_capped(tmp_path):
    _write_note(tmp_path / "a.md", "a " * 700)
    _write_note(tmp_path / "b.md", "a " * 700)

    results = search_project(tmp_path, "a", False, False)
    assert len(results) == MAX_RESULTS


def test_max_results_never_exceeds_cap(tmp_path):
    _write_note(tmp_path / "a.md", "a" * 1500)

    assert len(search_project(tmp_path, "a", True, False, max_results=5)) == 5
    assert len(search_project(tmp_path, "a", True, False, max_results=5000)) == MAX_RESULTS


def test_match_bounds_hold(tmp_path):
    _write_note(tmp_path / "note.md", "αβγ abc ΑΒΓ\n😀abc😀\n")

    for query, regex in (("abc", False), ("αβγ", False), (r"\w+", True)):
        for match in search_project(tmp_path, query, False, regex):
            assert 0 <= match.match_start < match.match_end <= len(match.line_content)


def test_case_folding_length_change_is_not_corrected(tmp_path):
    # Known edge case: "İ" lower-cases to two code points, so the offsets come
    # from the lower-cased line and drift from the original text.
    _write_note(tmp_path / "note.md", "İx")

    (match,) = search_project(tmp_path, "x", False, False)
    assert (match.match_start, match.match_end) == (2, 2)


def test_split_lines():
    assert split_lines("") == []
    assert split_lines("a\n") == ["a"]
    assert split_lines("a\r\nb\rc\n\nd") == ["a", "b\rc", "", "d"]


def test_group_by_file_keeps_order(tmp_path):
    _write_note(tmp_path / "only.md", "needle\nneedle needle")

    results = search_project(tmp_path, "needle", False, False)
    groups = group_by_file(results)
    assert len(groups) == 1
    assert groups[0].file_name == "only.md"
    assert groups[0].matches == results
    payload = groups[0].as_payload()
    assert payload["matches"][0]["line_number"] == 1
