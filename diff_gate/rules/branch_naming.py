"""Source-branch naming rule."""

from __future__ import annotations

import logging

from diff_gate.config import RuleDefinition
from diff_gate.patterns import branch_matches
from diff_gate.rules.base import EvaluationContext, Finding, finding_for, is_applicable

logger = logging.getLogger(__name__)

BRANCH_SUBJECT = "BRANCH_NAME"


class BranchNamingEvaluator:
    """Requires the source branch to match one of ``allowed_patterns``."""

    rule_type = "branch_naming"

    def evaluate(self, rule: RuleDefinition, ctx: EvaluationContext) -> list[Finding]:
        if not is_applicable(rule, ctx.target_branch):
            return []

        branch = ctx.source_branch
        if any(branch_matches(branch, pattern) for pattern in rule.allowed_patterns):
            return []

        logger.debug("Branch %s matches none of %s", branch, list(rule.allowed_patterns))
        allowed = ", ".join(rule.allowed_patterns)
        return [
            finding_for(
                rule,
                detail=f"Branch '{branch}' does not match allowed patterns: {allowed}",
                file=BRANCH_SUBJECT,
            )
        ]
