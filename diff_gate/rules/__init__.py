"""Rule evaluators and their registry."""

from collections.abc import Callable
from dataclasses import dataclass

from diff_gate.rules.base import EvaluationContext, Evaluator, Finding, is_applicable
from diff_gate.rules.branch_naming import BranchNamingEvaluator
from diff_gate.rules.code_pattern import CodePatternEvaluator
from diff_gate.rules.dependent_file import DependentFileEvaluator
from diff_gate.rules.diff_size import DiffSizeEvaluator
from diff_gate.rules.file_pattern import FilePatternEvaluator
from diff_gate.rules.file_size import FileSizeEvaluator

RULE_TYPE_ALIASES = {"pr_size": "diff_size"}

__all__ = [
    "EvaluationContext",
    "Evaluator",
    "Finding",
    "RuleTypeInfo",
    "build_evaluators",
    "canonical_rule_type",
    "is_applicable",
    "list_rule_types",
]


@dataclass(frozen=True, slots=True)
class RuleTypeInfo:
    """Rule kind metadata for listing."""

    rule_type: str
    name: str
    description: str


@dataclass(frozen=True, slots=True)
class _EvaluatorSpec:
    rule_type: str
    factory: Callable[[], Evaluator]
    name: str
    description: str


def build_evaluators() -> dict[str, Evaluator]:
    """Return one evaluator instance per supported rule type."""
    return {spec.rule_type: spec.factory() for spec in _ordered_specs()}


def canonical_rule_type(rule_type: str) -> str:
    return RULE_TYPE_ALIASES.get(rule_type, rule_type)


def list_rule_types() -> list[RuleTypeInfo]:
    return [
        RuleTypeInfo(rule_type=spec.rule_type, name=spec.name, description=spec.description)
        for spec in _ordered_specs()
    ]


def _ordered_specs() -> list[_EvaluatorSpec]:
    return [
        _spec(FilePatternEvaluator),
        _spec(CodePatternEvaluator),
        _spec(FileSizeEvaluator),
        _spec(DiffSizeEvaluator),
        _spec(BranchNamingEvaluator),
        _spec(DependentFileEvaluator),
    ]


def _spec(evaluator_cls: type[Evaluator]) -> _EvaluatorSpec:
    return _EvaluatorSpec(
        rule_type=evaluator_cls.rule_type,
        factory=evaluator_cls,
        name=evaluator_cls.__name__,
        description=(evaluator_cls.__doc__ or "").strip().splitlines()[0],
    )
