"""Evaluator protocol, evaluation context and finding model."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from diff_gate.changeset import ChangeSet, ChangeSetResolver, FileStat
from diff_gate.config import RuleDefinition
from diff_gate.context import ExecutionContext
from diff_gate.line_mapper import LineMapper
from diff_gate.patterns import branch_matches


@dataclass(frozen=True, slots=True)
class Finding:
    """A single rule match."""

    severity: str
    rule_id: str
    rule_name: str
    message: str
    detail: str
    file: str
    line: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "severity": self.severity,
            "message": self.message,
            "details": self.detail,
            "file": self.file,
            "line": self.line,
        }


@dataclass(slots=True)
class EvaluationContext:
    """Read-only inputs shared by every evaluator during one run."""

    repo: Path
    change_set: ChangeSet
    resolver: ChangeSetResolver
    line_mapper: LineMapper
    execution: ExecutionContext
    source_branch: str
    target_branch: str
    exclude_files: list[str] = field(default_factory=list)

    @property
    def changed_files(self) -> tuple[str, ...]:
        return self.change_set.changed

    def existing_changed_files(self) -> list[str]:
        return [path for path in self.change_set.changed if (self.repo / path).is_file()]

    def file_stats(self) -> list[FileStat]:
        return self.resolver.file_stats(self.change_set, exclude_patterns=self.exclude_files)


class Evaluator(Protocol):
    """Protocol for one rule kind."""

    rule_type: str

    def evaluate(self, rule: RuleDefinition, ctx: EvaluationContext) -> list[Finding]:
        """Evaluate ``rule`` against the context and return findings."""


def finding_for(rule: RuleDefinition, *, detail: str, file: str, line: int = 0) -> Finding:
    """Build a finding carrying the rule's own severity, id, name and message."""
    return Finding(
        severity=rule.severity,
        rule_id=rule.id,
        rule_name=rule.display_name,
        message=rule.message,
        detail=detail,
        file=file,
        line=line,
    )


def clip_line(content: str, max_len: int = 100) -> str:
    """First ``max_len`` characters of ``content``, unaltered."""
    return content[:max_len]


def is_applicable(rule: RuleDefinition, target_branch: str) -> bool:
    """A rule without ``target_branches`` applies everywhere; otherwise any pattern must match."""
    if not rule.target_branches:
        return True
    return any(branch_matches(target_branch, pattern) for pattern in rule.target_branches)
