"""End-to-end gate runs through the engine."""

from __future__ import annotations

import json
from pathlib import Path

from diff_gate.context import ExecutionContext
from diff_gate.engine import GateOptions, resolve_source_branch, resolve_target_branch, run_gate
from diff_gate.output import render_human, render_json
from tests.helpers_git import baseline_repo, git, write_file

RULES = {
    "rules": [
        {
            "id": "no_env_files",
            "name": "No env files",
            "type": "file_pattern",
            "severity": "error",
            "message": "Environment files must not be committed",
            "patterns": ["*.env"],
        },
        {
            "id": "no_print",
            "type": "code_pattern",
            "severity": "warning",
            "message": "print() added",
            "patterns": ["print\\("],
            "file_patterns": ["*.py"],
        },
        {
            "id": "release_branch_names",
            "type": "branch_naming",
            "severity": "error",
            "message": "Branch name not allowed",
            "allowed_patterns": ["feature/*"],
            "target_branches": ["release/*"],
        },
    ],
    "settings": {"fail_on_errors": True, "exclude_files": ["generated/*"]},
}


def _options(repo: Path, **overrides: object) -> GateOptions:
    values: dict[str, object] = {
        "repo": repo,
        "base_branch": "main",
        "rules_file": repo / "gate-rules.json",
        "custom_dir": repo / "custom-checks",
        "output": repo / "diff-gate-results.json",
        "execution": ExecutionContext(mode="local"),
        "include_builtin": False,
        "include_entry_points": False,
    }
    values.update(overrides)
    return GateOptions(**values)


def _repo(tmp_path: Path) -> Path:
    repo = baseline_repo(tmp_path, {"src/app.py": "value = 1\n"})
    (repo / "gate-rules.json").write_text(json.dumps(RULES), encoding="utf-8")
    write_file(repo, "src/app.py", "value = 1\nprint(value)\n")
    write_file(repo, "local.env", "TOKEN=1\n")
    write_file(repo, "generated/out.env", "TOKEN=2\n")
    return repo


def test_run_collects_rule_findings_and_fails_on_errors(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    run = run_gate(_options(repo))
    report = run.report

    assert [(item.rule_id, item.file, item.line) for item in report.findings] == [
        ("no_env_files", "local.env", 0),
        ("no_print", "src/app.py", 2),
    ]
    assert report.branch == "feature/x"
    assert report.base_branch == "main"
    assert report.target_branch == "main"
    assert report.commit == git(repo, "rev-parse", "HEAD").strip()
    assert report.summary.passed is False
    assert "generated/out.env" in run.change_set.excluded


def test_report_file_is_not_evaluated(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    (repo / "diff-gate-results.json").write_text("{}", encoding="utf-8")
    run = run_gate(_options(repo))
    assert "diff-gate-results.json" not in run.change_set.changed


def test_runs_are_deterministic(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    first = run_gate(_options(repo)).report.to_dict()
    second = run_gate(_options(repo)).report.to_dict()
    first.pop("timestamp")
    second.pop("timestamp")
    assert json.dumps(first) == json.dumps(second)


def test_target_branch_gates_branch_naming(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    git(repo, "checkout", "-q", "-b", "wip")

    on_main = run_gate(_options(repo)).report
    assert "release_branch_names" not in {item.rule_id for item in on_main.findings}

    on_release = run_gate(_options(repo, target_branch="release/2.0")).report
    assert "release_branch_names" in {item.rule_id for item in on_release.findings}
    assert on_release.target_branch == "release/2.0"


def test_unresolvable_base_still_produces_a_report(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    run = run_gate(_options(repo, base_branch="missing-base"))

    assert run.base.resolved is False
    assert run.change_set.changed == ()
    assert run.report.findings == ()
    assert run.report.summary.passed is True
    assert "not found" in render_human(run)


def test_ci_mode_sees_only_committed_changes(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    run = run_gate(_options(repo, execution=ExecutionContext(mode="ci")))
    assert run.report.findings == ()
    assert "CI mode" in render_human(run)


def test_detached_head_uses_ci_override_for_source_branch(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    git(repo, "checkout", "-q", "--detach")
    override = ExecutionContext(mode="ci", head_branch_override="feature/from-ci")
    assert resolve_source_branch(repo, override) == "feature/from-ci"
    assert resolve_source_branch(repo, ExecutionContext(mode="ci")) == "HEAD"


def test_target_branch_defaults_to_base_without_remote_prefix() -> None:
    assert resolve_target_branch("origin/develop") == "develop"
    assert resolve_target_branch("main") == "main"
    assert resolve_target_branch("main", "release/1") == "release/1"


def test_human_and_json_rendering(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    run = run_gate(_options(repo))

    human = render_human(run)
    assert "Local mode: uncommitted changes analysed, 2 untracked file(s) included" in human
    assert "[No env files] local.env: Environment files must not be committed" in human
    assert "[no_print] src/app.py:2: print() added" in human
    assert "FAILED" in human

    payload = json.loads(render_json(run.report))
    assert payload["summary"]["error_count"] == 1
    assert payload["summary"]["warning_count"] == 1
