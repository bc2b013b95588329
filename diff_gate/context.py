"""Execution context detection (CI vs local workspace)."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

CI_ENV_VARS = (
    "CI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "BUILDKITE",
    "CIRCLECI",
    "TRAVIS",
    "JENKINS_URL",
    "TF_BUILD",
    "BITBUCKET_BUILD_NUMBER",
    "TEAMCITY_VERSION",
)
HEAD_BRANCH_ENV_VARS = (
    "GITHUB_HEAD_REF",
    "CI_MERGE_REQUEST_SOURCE_BRANCH_NAME",
    "BITBUCKET_BRANCH",
)
_FALSEY = {"", "0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """Where the gate runs, resolved once per run.

    In ``ci`` mode comparisons are merge-base relative against HEAD and the
    working tree is ignored. In ``local`` mode the base is compared against
    the live working tree and untracked files are folded in.
    """

    mode: Literal["ci", "local"]
    head_branch_override: str | None = None

    @property
    def is_ci(self) -> bool:
        return self.mode == "ci"

    @property
    def includes_working_tree(self) -> bool:
        return self.mode == "local"

    @classmethod
    def detect(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        mode: str = "auto",
    ) -> ExecutionContext:
        """Build a context from environment signals, optionally forcing the mode."""
        env = os.environ if environ is None else environ
        override = _first_set(env, HEAD_BRANCH_ENV_VARS)
        resolved = mode.lower()
        if resolved == "auto":
            resolved = "ci" if _first_set(env, CI_ENV_VARS) is not None else "local"
        if resolved not in {"ci", "local"}:
            raise ValueError("mode must be one of: auto, ci, local")
        return cls(mode="ci" if resolved == "ci" else "local", head_branch_override=override)


def _first_set(env: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = env.get(name)
        if value is not None and value.strip().lower() not in _FALSEY:
            return value.strip()
    return None
