"""Map changed files to the lines they introduce."""

from __future__ import annotations

import logging
from pathlib import Path

from diff_gate.changeset import ChangeSet, ChangeSetResolver
from diff_gate.diff_parser import AddedLine, added_lines_from_diff, number_lines, split_lines
from diff_gate.git import get_path_diff, path_exists_at_revision

logger = logging.getLogger(__name__)


class LineMapper:
    """Produce ``AddedLine`` records for files of a resolved change set.

    Untracked files and files absent from the base tree are wholly new: every
    current line is added. Tracked files are diffed against the base in the
    resolver's comparison range and only ``+`` records are kept.
    """

    def __init__(self, resolver: ChangeSetResolver, change_set: ChangeSet) -> None:
        self._resolver = resolver
        self._change_set = change_set
        self._cache: dict[str, list[AddedLine]] = {}

    @property
    def repo(self) -> Path:
        return self._resolver.repo

    def added_lines(self, path: str) -> list[AddedLine]:
        """Return added lines for ``path`` in file order; empty when unchanged or deleted."""
        cached = self._cache.get(path)
        if cached is None:
            cached = self._compute(path)
            self._cache[path] = cached
        return cached

    def _compute(self, path: str) -> list[AddedLine]:
        base_ref = self._change_set.base_ref
        target = self.repo / path
        if base_ref is None or not target.is_file():
            return []

        if self._change_set.is_untracked(path) or not path_exists_at_revision(
            self.repo, base_ref, path
        ):
            logger.debug("%s is new relative to %s", path, base_ref)
            return list(number_lines(path, split_lines(_read_text(target))))

        diff_text = get_path_diff(self.repo, self._resolver.comparison_range(base_ref), path)
        if not diff_text.strip():
            return []
        return [
            AddedLine(path=path, line_number=line.line_number, content=line.content)
            for line in added_lines_from_diff(diff_text)
        ]


def _read_text(target: Path) -> str:
    return target.read_bytes().decode("utf-8", errors="replace")
