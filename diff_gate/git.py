"""Git subprocess helpers."""

from __future__ import annotations

import os
from pathlib import Path
from subprocess import CalledProcessError, run


class GitError(RuntimeError):
    """Raised when git command execution fails."""


def get_current_branch(repo: Path) -> str | None:
    """Return the checked-out branch name, ``HEAD`` when detached, None without commits."""
    try:
        return _run_git(repo, ["rev-parse", "--abbrev-ref", "HEAD"]).strip() or None
    except GitError:
        return None


def get_head_revision(repo: Path) -> str | None:
    """Return HEAD revision if present."""
    try:
        return _run_git(repo, ["rev-parse", "--verify", "HEAD"]).strip()
    except GitError:
        return None


def ref_exists(repo: Path, ref: str) -> bool:
    """Return True when ``ref`` resolves to a commit."""
    try:
        _run_git(repo, ["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])
    except GitError:
        return False
    return True


def fetch_branch(repo: Path, remote: str, branch: str) -> None:
    """Fetch one branch from a remote, never prompting for credentials."""
    _run_git(
        repo,
        ["fetch", "--quiet", "--no-tags", remote, branch],
        env={"GIT_TERMINAL_PROMPT": "0"},
    )


def path_exists_at_revision(repo: Path, revision: str, path: str) -> bool:
    """Return True when ``path`` is present in the tree of ``revision``."""
    try:
        _run_git(repo, ["cat-file", "-e", f"{revision}:{path}"])
    except GitError:
        return False
    return True


def list_changed_paths(
    repo: Path,
    revisions: list[str],
    *,
    diff_filter: str | None = None,
    cached: bool = False,
) -> list[str]:
    """Return paths reported by ``git diff --name-only`` for the given comparison."""
    args = ["diff", "--name-only", "--no-color", "--no-renames"]
    if diff_filter:
        args.append(f"--diff-filter={diff_filter}")
    if cached:
        args.append("--cached")
    args.extend(revisions)
    args.append("--")
    return _split_output(_run_git(repo, args))


def get_numstat(repo: Path, revisions: list[str]) -> str:
    """Return ``git diff --numstat`` output for the given comparison."""
    return _run_git(repo, ["diff", "--numstat", "--no-color", "--no-renames", *revisions, "--"])


def get_path_diff(repo: Path, revisions: list[str], path: str) -> str:
    """Return unified diff text for a single path."""
    return _run_git(repo, ["diff", "--no-color", "--no-ext-diff", *revisions, "--", path])


def list_tree_paths(repo: Path, revision: str) -> list[str]:
    """Return every file path in the tree of ``revision``."""
    return _split_output(_run_git(repo, ["ls-tree", "-r", "--name-only", revision]))


def list_tracked_paths(repo: Path) -> list[str]:
    """Return paths tracked in the index."""
    return _split_output(_run_git(repo, ["ls-files"]))


def list_untracked_paths(repo: Path) -> list[str]:
    """Return untracked, non-ignored paths."""
    return _split_output(_run_git(repo, ["ls-files", "--others", "--exclude-standard"]))


def _split_output(output: str) -> list[str]:
    return [line for line in output.split("\n") if line]


def _run_git(repo: Path, args: list[str], env: dict[str, str] | None = None) -> str:
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = os.environ.copy()
        merged_env.update(env)

    try:
        completed = run(
            ["git", "-c", "core.quotepath=off", *args],
            cwd=repo,
            check=True,
            capture_output=True,
            env=merged_env,
        )
    except CalledProcessError as exc:
        stderr = _decode(exc.stderr).strip()
        raise GitError(stderr or f"git {' '.join(args)} failed") from exc
    except OSError as exc:
        raise GitError(f"unable to run git: {exc}") from exc

    return _decode(completed.stdout)


def _decode(data: bytes | None) -> str:
    # only "\n" ends a record
    return (data or b"").decode("utf-8", errors="replace")
