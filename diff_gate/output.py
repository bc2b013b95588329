"""Output rendering."""

from __future__ import annotations

import json
from pathlib import Path

import click

from diff_gate.engine import GateRun
from diff_gate.report import Report
from diff_gate.rules.base import Finding

_SEVERITY_STYLES = {
    "error": ("Errors", "red"),
    "warning": ("Warnings", "yellow"),
    "info": ("Info", "blue"),
}


def render_json(report: Report) -> str:
    """Render the report document exactly as it is written to disk."""
    return json.dumps(report.to_dict(), indent=2)


def render_human(run: GateRun) -> str:
    """Render a compact colorized summary."""
    report = run.report
    summary = report.summary
    lines: list[str] = [
        click.style(
            f"diff-gate: {report.branch} -> {report.target_branch} (base {report.base_branch})",
            bold=True,
        )
    ]
    if run.execution.includes_working_tree:
        lines.append(
            f"Local mode: uncommitted changes analysed, "
            f"{len(run.change_set.untracked)} untracked file(s) included"
        )
    else:
        lines.append("CI mode: committed changes only")
    if not run.base.resolved:
        lines.append(click.style(f"Base reference '{run.base.requested}' not found", fg="yellow"))
    lines.append(f"Changed files: {len(run.change_set.changed)}")

    for severity, (label, color) in _SEVERITY_STYLES.items():
        findings = report.by_severity(severity)
        if not findings:
            continue
        lines.append(click.style(f"{label} ({len(findings)}):", fg=color, bold=True))
        lines.extend(f"  {_format_finding(finding)}" for finding in findings)

    failed_runs = [item for item in run.extension_runs if item.status == "failed"]
    if run.extension_runs:
        lines.append(
            f"Custom checks: {len(run.extension_runs)} run, {len(failed_runs)} failed"
        )

    verdict, color = ("PASSED", "green") if summary.passed else ("FAILED", "red")
    lines.append(
        click.style(
            f"{verdict}: {summary.error_count} error(s), {summary.warning_count} warning(s), "
            f"{summary.info_count} info",
            fg=color,
            bold=True,
        )
    )
    return "\n".join(lines)


def write_report(report: Report, path: Path) -> None:
    """Write the JSON report; ``OSError``/``TypeError`` propagate to the caller."""
    text = render_json(report)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text + "\n", encoding="utf-8")


def _format_finding(finding: Finding) -> str:
    location = finding.file
    if finding.line:
        location = f"{location}:{finding.line}"
    text = f"[{finding.rule_name}] {location}: {finding.message}"
    if finding.detail:
        first = finding.detail.splitlines()[0]
        text = f"{text}\n      {first}"
    return text
