"""Change-set resolution relative to a base branch."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from diff_gate.context import ExecutionContext
from diff_gate.diff_parser import split_lines
from diff_gate.git import (
    GitError,
    fetch_branch,
    get_numstat,
    list_changed_paths,
    list_tracked_paths,
    list_tree_paths,
    list_untracked_paths,
    ref_exists,
)
from diff_gate.patterns import matches_any

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"


@dataclass(frozen=True, slots=True)
class BaseRef:
    """Outcome of base-reference resolution."""

    requested: str
    ref: str
    resolved: bool


@dataclass(frozen=True, slots=True)
class FileStat:
    """Line counts for one path in the change set."""

    path: str
    added: int
    removed: int

    @property
    def total(self) -> int:
        return self.added + self.removed


@dataclass(frozen=True, slots=True)
class ChangeSet:
    """Paths relevant to one run.

    ``changed`` is the authoritative, sorted list rule evaluators iterate. Each
    path belongs to at most one of ``added``, ``modified``, ``deleted`` and
    ``untracked``; deleted paths never appear in ``changed``.
    """

    base_ref: str | None = None
    changed: tuple[str, ...] = ()
    added: tuple[str, ...] = ()
    modified: tuple[str, ...] = ()
    deleted: tuple[str, ...] = ()
    untracked: tuple[str, ...] = ()
    excluded: tuple[str, ...] = field(default=(), compare=False)

    @property
    def is_empty(self) -> bool:
        return not self.changed and not self.deleted

    def is_untracked(self, path: str) -> bool:
        return path in self.untracked

    def without(self, patterns: list[str]) -> ChangeSet:
        """Return a copy with every path matching one of the glob ``patterns`` removed."""
        if not patterns:
            return self

        def keep(paths: tuple[str, ...]) -> tuple[str, ...]:
            return tuple(path for path in paths if not matches_any(path, patterns))

        removed = tuple(path for path in self.changed if matches_any(path, patterns))
        for path in removed:
            logger.debug("Excluding file: %s", path)
        return ChangeSet(
            base_ref=self.base_ref,
            changed=keep(self.changed),
            added=keep(self.added),
            modified=keep(self.modified),
            deleted=keep(self.deleted),
            untracked=keep(self.untracked),
            excluded=tuple(sorted(set(self.excluded) | set(removed))),
        )

    def to_dict(self) -> dict[str, list[str] | str | None]:
        return {
            "base_ref": self.base_ref,
            "changed": list(self.changed),
            "added": list(self.added),
            "modified": list(self.modified),
            "deleted": list(self.deleted),
            "untracked": list(self.untracked),
        }


class ChangeSetResolver:
    """Resolve base references, change sets and line statistics for one repository."""

    def __init__(self, repo: Path, base_branch: str, context: ExecutionContext) -> None:
        self.repo = repo
        self.base_branch = base_branch
        self.context = context

    def resolve_base_ref(self) -> BaseRef:
        """Resolve the base branch to a ref, preferring the remote-tracking branch.

        Order: ``origin/<name>``, fetch then ``origin/<name>`` again, local
        ``<name>``. When nothing resolves the literal name is returned with
        ``resolved=False``. Safe to call repeatedly.
        """
        name = self.base_branch
        if name.startswith(f"{REMOTE_NAME}/"):
            return BaseRef(requested=name, ref=name, resolved=ref_exists(self.repo, name))

        remote_ref = f"{REMOTE_NAME}/{name}"
        if ref_exists(self.repo, remote_ref):
            return BaseRef(requested=name, ref=remote_ref, resolved=True)

        try:
            fetch_branch(self.repo, REMOTE_NAME, name)
        except GitError as exc:
            logger.debug("Fetching %s from %s failed: %s", name, REMOTE_NAME, exc)
        else:
            if ref_exists(self.repo, remote_ref):
                return BaseRef(requested=name, ref=remote_ref, resolved=True)

        if ref_exists(self.repo, name):
            return BaseRef(requested=name, ref=name, resolved=True)

        logger.error("Unable to resolve base branch '%s'", name)
        return BaseRef(requested=name, ref=name, resolved=False)

    def committed_range(self, base_ref: str) -> list[str]:
        """Merge-base relative comparison of committed history."""
        return [f"{base_ref}...HEAD"]

    def comparison_range(self, base_ref: str) -> list[str]:
        """Revisions compared for line-level data in the current context."""
        if self.context.includes_working_tree:
            return [base_ref]
        return self.committed_range(base_ref)

    def untracked_files(self) -> list[str]:
        if not self.context.includes_working_tree:
            return []
        return sorted(set(list_untracked_paths(self.repo)))

    def deleted_files(self, base_ref: str) -> list[str]:
        deleted = set(
            list_changed_paths(self.repo, self.committed_range(base_ref), diff_filter="D")
        )
        if self.context.includes_working_tree:
            deleted.update(list_changed_paths(self.repo, [], diff_filter="D", cached=True))
            deleted.update(list_changed_paths(self.repo, ["HEAD"], diff_filter="D"))
        return sorted(deleted)

    def changed_files(
        self, base_ref: str, *, untracked: list[str], deleted: list[str]
    ) -> list[str]:
        changed = set(list_changed_paths(self.repo, self.committed_range(base_ref)))
        if self.context.includes_working_tree:
            changed.update(list_changed_paths(self.repo, ["HEAD"]))
            changed.update(untracked)
        return sorted(changed - set(deleted))

    def added_files(self, base_ref: str, *, untracked: list[str]) -> list[str]:
        base_paths = set(list_tree_paths(self.repo, base_ref))
        current = {path for path in list_tracked_paths(self.repo) if path not in base_paths}
        current.update(untracked)
        return sorted(path for path in current if (self.repo / path).is_file())

    def modified_files(self, base_ref: str) -> list[str]:
        modified = set(
            list_changed_paths(self.repo, self.committed_range(base_ref), diff_filter="M")
        )
        if self.context.includes_working_tree:
            modified.update(list_changed_paths(self.repo, ["HEAD"], diff_filter="M"))
            modified.update(list_changed_paths(self.repo, [], diff_filter="M", cached=True))
        return sorted(modified)

    def resolve(self, base: BaseRef | None = None) -> ChangeSet:
        """Build the change set, or an empty one when the base cannot be resolved."""
        base = base or self.resolve_base_ref()
        if not base.resolved:
            return ChangeSet()

        ref = base.ref
        untracked = self.untracked_files()
        deleted = self.deleted_files(ref)
        changed = self.changed_files(ref, untracked=untracked, deleted=deleted)
        changed_set = set(changed)
        untracked_set = set(untracked) & changed_set
        added = set(self.added_files(ref, untracked=untracked)) & changed_set
        added -= untracked_set
        modified = set(self.modified_files(ref)) & changed_set
        modified -= added | untracked_set

        return ChangeSet(
            base_ref=ref,
            changed=tuple(changed),
            added=tuple(sorted(added)),
            modified=tuple(sorted(modified)),
            deleted=tuple(deleted),
            untracked=tuple(sorted(untracked_set)),
        )

    def file_stats(
        self,
        change_set: ChangeSet,
        *,
        exclude_patterns: list[str] | None = None,
    ) -> list[FileStat]:
        """Per-path added/removed counts for the change set.

        Untracked files count every line as added; they only exist in local
        context.
        """
        if change_set.base_ref is None:
            return []
        stats = parse_numstat(
            get_numstat(self.repo, self.comparison_range(change_set.base_ref))
        )
        for path in change_set.untracked:
            stats.append(FileStat(path=path, added=self.count_lines(path), removed=0))
        if exclude_patterns:
            stats = [stat for stat in stats if not matches_any(stat.path, exclude_patterns)]
        return stats

    def count_lines(self, path: str) -> int:
        target = self.repo / path
        try:
            text = target.read_bytes().decode("utf-8", errors="replace")
        except OSError as exc:
            logger.debug("Unable to read %s: %s", path, exc)
            return 0
        return len(split_lines(text))


def parse_numstat(output: str) -> list[FileStat]:
    """Parse ``git diff --numstat`` output; binary entries count as zero."""
    stats: list[FileStat] = []
    for raw_line in output.split("\n"):
        parts = raw_line.split("\t", 2)
        if len(parts) != 3:
            continue
        added_text, removed_text, path = parts
        stats.append(
            FileStat(
                path=path,
                added=int(added_text) if added_text.isdigit() else 0,
                removed=int(removed_text) if removed_text.isdigit() else 0,
            )
        )
    return stats
