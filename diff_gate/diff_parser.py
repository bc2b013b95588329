"""Unified diff parsing and added-line mapping."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from re import compile
from typing import Literal

HUNK_HEADER_RE = compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<section>.*)$"
)
NULL_PATH = "/dev/null"

LineKind = Literal["context", "add", "delete", "meta"]


@dataclass(frozen=True, slots=True)
class AddedLine:
    """Content introduced by the change set at a 1-based line of the current file."""

    path: str
    line_number: int
    content: str


@dataclass(frozen=True, slots=True)
class DiffLine:
    kind: LineKind
    content: str
    old_lineno: int | None = None
    new_lineno: int | None = None


@dataclass(slots=True)
class Hunk:
    """One ``@@`` block; counts are the ones declared by its header."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str = ""
    lines: list[DiffLine] = field(default_factory=list)

    @classmethod
    def from_header(cls, header: str) -> Hunk:
        match = HUNK_HEADER_RE.match(header)
        if match is None:
            raise ValueError(f"Invalid hunk header: {header}")
        return cls(
            old_start=int(match["old_start"]),
            old_count=int(match["old_count"] or 1),
            new_start=int(match["new_start"]),
            new_count=int(match["new_count"] or 1),
            section=match["section"].strip(),
        )


@dataclass(slots=True)
class FileDiff:
    old_path: str | None = None
    new_path: str | None = None
    hunks: list[Hunk] = field(default_factory=list)

    @property
    def path(self) -> str:
        for candidate in (self.new_path, self.old_path):
            if candidate and candidate != NULL_PATH:
                return candidate
        return "<unknown>"

    def added_lines(self) -> list[AddedLine]:
        """``+`` records of every hunk with their new-file line numbers."""
        path = self.path
        return [
            AddedLine(path=path, line_number=line.new_lineno, content=line.content)
            for hunk in self.hunks
            for line in hunk.lines
            if line.kind == "add" and line.new_lineno is not None
        ]


class _DiffReader:
    """Line-at-a-time reader.

    A hunk body is consumed by the line counts of its header, so content
    starting with ``--`` or ``++`` is never taken for a file header.
    """

    def __init__(self) -> None:
        self.files: list[FileDiff] = []
        self._file: FileDiff | None = None
        self._hunk: Hunk | None = None
        self._old_lineno = 0
        self._new_lineno = 0
        self._old_left = 0
        self._new_left = 0

    def feed(self, raw: str) -> None:
        if self._hunk is not None and (self._old_left > 0 or self._new_left > 0):
            self._body_line(raw)
        elif raw.startswith("diff --git "):
            self._open_file(*_paths_from_git_header(raw))
        elif raw.startswith("--- "):
            if self._file is None or self._file.hunks or self._hunk is not None:
                self._open_file(None, None)
            self._current_file().old_path = _parse_path(raw[4:])
        elif raw.startswith("+++ "):
            self._current_file().new_path = _parse_path(raw[4:])
        elif raw.startswith("@@ "):
            self._open_hunk(Hunk.from_header(raw))
        elif raw.startswith("\\") and self._hunk is not None:
            self._hunk.lines.append(DiffLine(kind="meta", content=raw[2:]))

    def finish(self) -> list[FileDiff]:
        self._close_file()
        return self.files

    def _body_line(self, raw: str) -> None:
        hunk = self._hunk
        assert hunk is not None
        marker = raw[:1]
        if marker == "\\":
            hunk.lines.append(DiffLine(kind="meta", content=raw[2:]))
        elif marker == "+":
            hunk.lines.append(DiffLine(kind="add", content=raw[1:], new_lineno=self._new_lineno))
            self._new_lineno += 1
            self._new_left -= 1
        elif marker == "-":
            hunk.lines.append(
                DiffLine(kind="delete", content=raw[1:], old_lineno=self._old_lineno)
            )
            self._old_lineno += 1
            self._old_left -= 1
        else:
            # git writes an empty context line as a bare newline
            hunk.lines.append(
                DiffLine(
                    kind="context",
                    content=raw[1:],
                    old_lineno=self._old_lineno,
                    new_lineno=self._new_lineno,
                )
            )
            self._old_lineno += 1
            self._new_lineno += 1
            self._old_left -= 1
            self._new_left -= 1

    def _current_file(self) -> FileDiff:
        if self._file is None:
            self._open_file(None, None)
        assert self._file is not None
        return self._file

    def _open_file(self, old_path: str | None, new_path: str | None) -> None:
        self._close_file()
        self._file = FileDiff(old_path=old_path, new_path=new_path)

    def _close_file(self) -> None:
        self._close_hunk()
        if self._file is not None:
            self.files.append(self._file)
        self._file = None

    def _open_hunk(self, hunk: Hunk) -> None:
        self._current_file()
        self._close_hunk()
        self._hunk = hunk
        self._old_lineno, self._new_lineno = hunk.old_start, hunk.new_start
        self._old_left, self._new_left = hunk.old_count, hunk.new_count

    def _close_hunk(self) -> None:
        if self._hunk is not None and self._file is not None:
            self._file.hunks.append(self._hunk)
        self._hunk = None


def parse_unified_diff(diff_text: str) -> list[FileDiff]:
    """Parse unified diff text into file/hunk/line models.

    Raises ``ValueError`` on a malformed hunk header.
    """
    reader = _DiffReader()
    for raw in split_lines(diff_text):
        reader.feed(raw)
    return reader.finish()


def added_lines_from_diff(diff_text: str) -> list[AddedLine]:
    """Return added lines, in order, for every file in ``diff_text``."""
    added: list[AddedLine] = []
    for file_diff in parse_unified_diff(diff_text):
        added.extend(file_diff.added_lines())
    return added


def number_lines(path: str, lines: Iterable[str]) -> Iterator[AddedLine]:
    """Treat every line as added, numbering from 1."""
    for index, content in enumerate(lines, start=1):
        yield AddedLine(path=path, line_number=index, content=content)


def split_lines(text: str) -> list[str]:
    """Split file content into lines, ignoring the terminating newline."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _paths_from_git_header(line: str) -> tuple[str | None, str | None]:
    parts = line.split(maxsplit=3)
    old_path = _strip_ab_prefix(parts[2]) if len(parts) > 2 else None
    new_path = _strip_ab_prefix(parts[3]) if len(parts) > 3 else None
    return old_path, new_path


def _parse_path(value: str) -> str:
    return _strip_ab_prefix(value.strip().split("\t", 1)[0])


def _strip_ab_prefix(path: str) -> str:
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path
