"""Dangerous code-pattern rule over added lines."""

from __future__ import annotations

import logging

from diff_gate.config import RuleDefinition
from diff_gate.patterns import compile_content_pattern, contains_any, matches_any
from diff_gate.rules.base import EvaluationContext, Finding, clip_line, finding_for

logger = logging.getLogger(__name__)


class CodePatternEvaluator:
    """Finds regex matches in lines introduced by the change set.

    Exclude substrings are checked before any regex; a line containing one is
    never reported.
    """

    rule_type = "code_pattern"

    def evaluate(self, rule: RuleDefinition, ctx: EvaluationContext) -> list[Finding]:
        # Compile up front so a malformed pattern fails the whole rule.
        compiled = [(pattern, compile_content_pattern(pattern)) for pattern in rule.patterns]
        findings: list[Finding] = []

        for path in ctx.existing_changed_files():
            if not _selects(path, rule.file_patterns):
                continue
            for added in ctx.line_mapper.added_lines(path):
                if contains_any(added.content, rule.exclude_patterns):
                    continue
                for pattern, regex in compiled:
                    if regex.search(added.content) is None:
                        continue
                    logger.debug(
                        "Pattern '%s' found in %s at line %d", pattern, path, added.line_number
                    )
                    findings.append(
                        finding_for(
                            rule,
                            detail=f"Pattern found in added line: {clip_line(added.content)}",
                            file=path,
                            line=added.line_number,
                        )
                    )
        return findings


def _selects(path: str, file_patterns: tuple[str, ...]) -> bool:
    if not file_patterns or file_patterns == ("**",):
        return True
    return matches_any(path, file_patterns)
