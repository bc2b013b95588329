"""Companion-file rule: trigger files require dependent files to change too."""

from __future__ import annotations

import logging

from diff_gate.config import RuleDefinition
from diff_gate.patterns import glob_match, matches_any
from diff_gate.rules.base import EvaluationContext, Finding, finding_for

logger = logging.getLogger(__name__)


class DependentFileEvaluator:
    """Flags source changes that arrive without any of their dependent files."""

    rule_type = "dependent_file"

    def evaluate(self, rule: RuleDefinition, ctx: EvaluationContext) -> list[Finding]:
        triggers: list[str] = []
        for path in ctx.changed_files:
            if rule.source_folders and not any(
                path.startswith(folder) for folder in rule.source_folders
            ):
                continue
            if any(glob_match(path, pattern) for pattern in rule.source_patterns):
                logger.debug("Source file modified: %s", path)
                triggers.append(path)

        if not triggers:
            return []

        for path in ctx.changed_files:
            if matches_any(path, rule.dependent_files):
                logger.debug("Dependent file found modified: %s", path)
                return []

        triggered = ", ".join(triggers)
        expected = ", ".join(rule.dependent_files)
        return [
            finding_for(
                rule,
                detail=(
                    f"Modified source files: {triggered}. "
                    f"Expected dependent files to be updated: {expected}"
                ),
                file=triggered,
            )
        ]
