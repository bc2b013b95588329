"""Oversized file rule."""

from __future__ import annotations

import logging

from diff_gate.config import RuleDefinition
from diff_gate.patterns import contains_any, matches_any
from diff_gate.rules.base import EvaluationContext, Finding, finding_for

logger = logging.getLogger(__name__)


class FileSizeEvaluator:
    """Flags changed files larger than ``max_size_kb`` kibibytes."""

    rule_type = "file_size"

    def evaluate(self, rule: RuleDefinition, ctx: EvaluationContext) -> list[Finding]:
        if rule.max_size_kb is None:
            raise ValueError(f"{rule.id}: max_size_kb is required")

        findings: list[Finding] = []
        for path in ctx.existing_changed_files():
            if contains_any(path, rule.exclude_patterns):
                continue
            if rule.file_patterns and not matches_any(path, rule.file_patterns):
                continue
            size_kb = (ctx.repo / path).stat().st_size // 1024
            if size_kb <= rule.max_size_kb:
                continue
            logger.debug(
                "File %s exceeds size limit: %dKB > %dKB", path, size_kb, rule.max_size_kb
            )
            findings.append(
                finding_for(
                    rule,
                    detail=f"File size: {size_kb}KB (limit: {rule.max_size_kb}KB)",
                    file=path,
                )
            )
        return findings
