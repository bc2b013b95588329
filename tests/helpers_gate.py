"""Helpers for building evaluation contexts against synthetic repositories."""

from __future__ import annotations

from pathlib import Path

from diff_gate.changeset import ChangeSetResolver
from diff_gate.config import RuleDefinition, parse_rule
from diff_gate.context import ExecutionContext
from diff_gate.line_mapper import LineMapper
from diff_gate.rules.base import EvaluationContext


def build_context(
    repo: Path,
    *,
    base: str = "main",
    mode: str = "local",
    source_branch: str = "feature/x",
    target_branch: str = "main",
    exclude_files: list[str] | None = None,
) -> EvaluationContext:
    execution = ExecutionContext.detect({}, mode=mode)
    resolver = ChangeSetResolver(repo, base, execution)
    change_set = resolver.resolve().without(exclude_files or [])
    return EvaluationContext(
        repo=repo,
        change_set=change_set,
        resolver=resolver,
        line_mapper=LineMapper(resolver, change_set),
        execution=execution,
        source_branch=source_branch,
        target_branch=target_branch,
        exclude_files=list(exclude_files or []),
    )


def rule(rule_type: str, **fields: object) -> RuleDefinition:
    raw: dict[str, object] = {
        "id": fields.pop("id", f"test_{rule_type}"),
        "type": rule_type,
        "severity": fields.pop("severity", "error"),
        "name": fields.pop("name", f"Test {rule_type}"),
        "message": fields.pop("message", f"{rule_type} violated"),
    }
    raw.update(fields)
    return parse_rule(raw, source="test")
