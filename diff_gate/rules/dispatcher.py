"""Rule evaluation dispatcher."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from diff_gate.config import RuleDefinition
from diff_gate.report import ResultAggregator
from diff_gate.rules import build_evaluators, canonical_rule_type
from diff_gate.rules.base import EvaluationContext, Evaluator, Finding, is_applicable

logger = logging.getLogger(__name__)


class RuleDispatcher:
    """Evaluate rules one at a time, in order, feeding findings to an aggregator.

    Per rule: applicability check, type dispatch, evaluator execution. An
    inapplicable rule, an unknown type or a failing evaluator produces no
    findings and never stops the run.
    """

    def __init__(self, evaluators: dict[str, Evaluator] | None = None) -> None:
        self._evaluators = evaluators if evaluators is not None else build_evaluators()

    def evaluate(self, rule: RuleDefinition, ctx: EvaluationContext) -> list[Finding]:
        if not is_applicable(rule, ctx.target_branch):
            logger.debug(
                "Skipping rule %s: not applicable to target branch %s", rule.id, ctx.target_branch
            )
            return []

        rule_type = canonical_rule_type(rule.type)
        evaluator = self._evaluators.get(rule_type)
        if evaluator is None:
            logger.warning("Unknown rule type '%s' for rule %s", rule.type, rule.id)
            return []

        logger.info("Checking %s rule: %s", rule_type, rule.display_name)
        try:
            return evaluator.evaluate(rule, ctx)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Rule %s failed: %s: %s", rule.id, exc.__class__.__name__, exc)
            logger.debug("Rule %s traceback", rule.id, exc_info=True)
            return []

    def run(
        self,
        rules: Iterable[RuleDefinition],
        ctx: EvaluationContext,
        aggregator: ResultAggregator,
    ) -> None:
        if ctx.change_set.is_empty:
            logger.warning("No changed files found")
        for rule in rules:
            for finding in self.evaluate(rule, ctx):
                aggregator.add(finding)
