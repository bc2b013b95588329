"""Finding aggregation and report building."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from diff_gate.config import SEVERITIES, GateSettings
from diff_gate.rules.base import Finding

logger = logging.getLogger(__name__)

RESULT_KEYS = {"error": "errors", "warning": "warnings", "info": "infos"}


@dataclass(frozen=True, slots=True)
class Summary:
    """Severity counts and the gate verdict."""

    error_count: int
    warning_count: int
    info_count: int
    passed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "info_count": self.info_count,
            "passed": self.passed,
        }


@dataclass(frozen=True, slots=True)
class Report:
    """Final, write-once outcome of a run."""

    timestamp: str
    branch: str | None
    base_branch: str
    target_branch: str
    commit: str | None
    findings: tuple[Finding, ...]
    summary: Summary

    def by_severity(self, severity: str) -> list[Finding]:
        return [finding for finding in self.findings if finding.severity == severity]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "branch": self.branch,
            "base_branch": self.base_branch,
            "target_branch": self.target_branch,
            "commit": self.commit,
            "results": {
                RESULT_KEYS[severity]: [item.to_dict() for item in self.by_severity(severity)]
                for severity in SEVERITIES
            },
            "summary": self.summary.to_dict(),
        }


def compute_passed(
    *,
    error_count: int,
    warning_count: int,
    settings: GateSettings,
) -> bool:
    """Fail on any error when ``fail_on_errors`` is set, or when warnings exceed the maximum."""
    if settings.fail_on_errors and error_count > 0:
        return False
    if settings.max_warnings is not None and warning_count > settings.max_warnings:
        return False
    return True


@dataclass(slots=True)
class ResultAggregator:
    """Owns the findings list and severity counters for one run."""

    findings: list[Finding] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=lambda: dict.fromkeys(SEVERITIES, 0))
    _finalized: bool = False

    @property
    def error_count(self) -> int:
        return self.counts["error"]

    @property
    def warning_count(self) -> int:
        return self.counts["warning"]

    @property
    def info_count(self) -> int:
        return self.counts["info"]

    def add(self, finding: Finding) -> None:
        if finding.severity not in self.counts:
            raise ValueError(
                f"Unknown severity '{finding.severity}'. Expected one of: {', '.join(SEVERITIES)}"
            )
        if self._finalized:
            raise RuntimeError("Report already finalized")
        self.findings.append(finding)
        self.counts[finding.severity] += 1
        logger.debug(
            "Recorded %s finding %s for %s", finding.severity, finding.rule_id, finding.file
        )

    def add_result(
        self,
        severity: str,
        rule_id: str,
        rule_name: str,
        message: str,
        detail: str,
        file: str,
        line: int = 0,
    ) -> None:
        """Append a finding exactly as a built-in evaluator would."""
        self.add(
            Finding(
                severity=severity,
                rule_id=rule_id,
                rule_name=rule_name,
                message=message,
                detail=detail,
                file=file,
                line=line,
            )
        )

    def finalize(
        self,
        *,
        settings: GateSettings,
        branch: str | None,
        base_branch: str,
        target_branch: str,
        commit: str | None,
        now: datetime | None = None,
    ) -> Report:
        """Compute the verdict and freeze the report; only allowed once."""
        if self._finalized:
            raise RuntimeError("Report already finalized")
        self._finalized = True
        moment = now or datetime.now(tz=UTC)
        timestamp = moment.replace(microsecond=0).isoformat().replace("+00:00", "Z")
        return Report(
            timestamp=timestamp,
            branch=branch,
            base_branch=base_branch,
            target_branch=target_branch,
            commit=commit,
            findings=tuple(self.findings),
            summary=Summary(
                error_count=self.error_count,
                warning_count=self.warning_count,
                info_count=self.info_count,
                passed=compute_passed(
                    error_count=self.error_count,
                    warning_count=self.warning_count,
                    settings=settings,
                ),
            ),
        )
