"""Aggregate diff-size rule."""

from __future__ import annotations

import logging

from diff_gate.changeset import FileStat
from diff_gate.config import RuleDefinition
from diff_gate.rules.base import EvaluationContext, Finding, finding_for

logger = logging.getLogger(__name__)

DIFF_SIZE_SUBJECT = "DIFF_SIZE"
BREAKDOWN_SUBJECT = "DIFF_BREAKDOWN"
BREAKDOWN_LIMIT = 10


class DiffSizeEvaluator:
    """Flags change sets whose line count exceeds ``max_lines``.

    A breach also emits an ``info`` finding listing the files that contribute
    the most changed lines, whatever the rule's own severity.
    """

    rule_type = "diff_size"

    def evaluate(self, rule: RuleDefinition, ctx: EvaluationContext) -> list[Finding]:
        stats = ctx.file_stats()
        line_count = sum(_count(stat, rule.count_type) for stat in stats)
        logger.info("Diff stats: %d lines (%s)", line_count, rule.count_type)
        if line_count <= rule.max_lines:
            return []

        findings = [
            finding_for(
                rule,
                detail=(
                    f"This PR/diff has {line_count} {rule.count_type} lines "
                    f"(limit: {rule.max_lines}). Consider breaking it into smaller changes."
                ),
                file=DIFF_SIZE_SUBJECT,
            )
        ]
        top = sorted(stats, key=lambda stat: (-stat.total, stat.path))[:BREAKDOWN_LIMIT]
        if top:
            rows = "\n".join(f"{stat.added}\t{stat.removed}\t{stat.path}" for stat in top)
            findings.append(
                Finding(
                    severity="info",
                    rule_id=f"{rule.id}_breakdown",
                    rule_name="Large Diff - File Breakdown",
                    message="Files contributing most to the large diff",
                    detail=f"Top files by line changes:\n{rows}",
                    file=BREAKDOWN_SUBJECT,
                )
            )
        return findings


def _count(stat: FileStat, count_type: str) -> int:
    if count_type == "added":
        return stat.added
    if count_type == "removed":
        return stat.removed
    return stat.total
