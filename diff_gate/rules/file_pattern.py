"""Disallowed file-path rule."""

from __future__ import annotations

import logging

from diff_gate.config import RuleDefinition
from diff_gate.patterns import glob_match
from diff_gate.rules.base import EvaluationContext, Finding, finding_for

logger = logging.getLogger(__name__)


class FilePatternEvaluator:
    """Flags every changed path matching one of the rule's globs."""

    rule_type = "file_pattern"

    def evaluate(self, rule: RuleDefinition, ctx: EvaluationContext) -> list[Finding]:
        findings: list[Finding] = []
        for path in ctx.changed_files:
            for pattern in rule.patterns:
                if not glob_match(path, pattern):
                    continue
                logger.debug("File %s matches pattern %s", path, pattern)
                findings.append(finding_for(rule, detail=f"File matched: {path}", file=path))
        return findings
