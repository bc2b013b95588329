"""Evaluator behaviour for each rule kind."""

from __future__ import annotations

import re
from pathlib import Path

import pytest

from diff_gate.rules.branch_naming import BRANCH_SUBJECT, BranchNamingEvaluator
from diff_gate.rules.code_pattern import CodePatternEvaluator
from diff_gate.rules.dependent_file import DependentFileEvaluator
from diff_gate.rules.diff_size import BREAKDOWN_SUBJECT, DIFF_SIZE_SUBJECT, DiffSizeEvaluator
from diff_gate.rules.file_pattern import FilePatternEvaluator
from diff_gate.rules.file_size import FileSizeEvaluator
from tests.helpers_gate import build_context, rule
from tests.helpers_git import baseline_repo, build_numbered_lines, commit_all, write_file


def test_file_pattern_emits_one_finding_per_matching_pattern(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"README.md": "readme\n"})
    write_file(repo, "config/secret.env", "TOKEN=x\n")
    write_file(repo, "src/app.py", "print('ok')\n")

    findings = FilePatternEvaluator().evaluate(
        rule("file_pattern", patterns=["*.env", "*secret*"]), build_context(repo)
    )

    assert [(item.file, item.detail) for item in findings] == [
        ("config/secret.env", "File matched: config/secret.env"),
        ("config/secret.env", "File matched: config/secret.env"),
    ]
    assert findings[0].rule_name == "Test file_pattern"
    assert findings[0].line == 0


def test_code_pattern_reports_added_lines_with_numbers(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"web/app.js": "const a = 1;\nconst b = 2;\n"})
    write_file(
        repo,
        "web/app.js",
        "const a = 1;\nconsole.log(a);\nconst b = 2;\nconsole.log(b); // allow-log\n",
    )
    write_file(repo, "tools/script.py", "console.log = print\n")

    findings = CodePatternEvaluator().evaluate(
        rule(
            "code_pattern",
            severity="warning",
            patterns=[r"console\.log"],
            file_patterns=["*.js"],
            exclude_patterns=["allow-log"],
        ),
        build_context(repo),
    )

    assert len(findings) == 1
    finding = findings[0]
    assert (finding.file, finding.line, finding.severity) == ("web/app.js", 2, "warning")
    assert finding.detail == "Pattern found in added line: console.log(a);"


def test_code_pattern_exclude_wins_over_include(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    write_file(repo, "src/settings.py", "password = 'x'  # nosec-example\n")

    findings = CodePatternEvaluator().evaluate(
        rule("code_pattern", patterns=["password"], exclude_patterns=["nosec-example"]),
        build_context(repo),
    )
    assert findings == []


def test_code_pattern_ignores_pre_existing_lines(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"src/app.py": "eval(data)\n"})
    write_file(repo, "src/app.py", "eval(data)\nvalue = 1\n")

    findings = CodePatternEvaluator().evaluate(
        rule("code_pattern", patterns=[r"eval\("]), build_context(repo)
    )
    assert findings == []


@pytest.mark.parametrize(
    ("path", "before", "added", "pattern"),
    [
        ("src/app.py", "one\n\x0c\ntwo\n", "SECRET = 1", "SECRET"),
        ("web/app.js", "const t = 'a\u2028b';\nlet x = 1;\nlet y = 2;\n", "eval(t);", r"eval\("),
        ("src/mixed.txt", "first\rstill first\nsecond\nthird\n", "TOKEN=abc", "TOKEN"),
    ],
)
def test_code_pattern_sees_lines_after_unusual_separators(
    tmp_path: Path, path: str, before: str, added: str, pattern: str
) -> None:
    repo = baseline_repo(tmp_path, {path: before})
    (repo / path).write_bytes((before + added + "\n").encode("utf-8"))

    findings = CodePatternEvaluator().evaluate(
        rule("code_pattern", patterns=[pattern], file_patterns=["**"]), build_context(repo)
    )
    assert [(item.file, item.line) for item in findings] == [(path, 4)]


def test_code_pattern_clips_long_lines(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    write_file(repo, "long.txt", "  TODO " + "x" * 150 + "\n")

    findings = CodePatternEvaluator().evaluate(
        rule("code_pattern", patterns=["TODO"], file_patterns=["**"]), build_context(repo)
    )
    excerpt = findings[0].detail.removeprefix("Pattern found in added line: ")
    assert excerpt == ("  TODO " + "x" * 150)[:100]


def test_code_pattern_malformed_regex_raises(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    write_file(repo, "new.txt", "text\n")
    with pytest.raises(re.error):
        CodePatternEvaluator().evaluate(rule("code_pattern", patterns=["("]), build_context(repo))


def test_file_size_uses_truncating_kibibytes(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    write_file(repo, "assets/big.bin", "x" * (3 * 1024 + 500))
    write_file(repo, "assets/limit.bin", "x" * (2 * 1024 + 1023))
    write_file(repo, "vendor/big.js", "x" * 4096)

    findings = FileSizeEvaluator().evaluate(
        rule("file_size", max_size_kb=2, exclude_patterns=["vendor/"]), build_context(repo)
    )

    assert [(item.file, item.detail) for item in findings] == [
        ("assets/big.bin", "File size: 3KB (limit: 2KB)"),
    ]


def test_file_size_without_limit_fails_the_rule(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    with pytest.raises(ValueError, match="max_size_kb"):
        FileSizeEvaluator().evaluate(rule("file_size"), build_context(repo))


def test_diff_size_breach_emits_finding_and_info_breakdown(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    write_file(repo, "src/a.py", build_numbered_lines("a", 7))
    write_file(repo, "src/b.py", build_numbered_lines("b", 4))
    commit_all(repo, "eleven lines")

    findings = DiffSizeEvaluator().evaluate(
        rule("diff_size", id="pr_size", severity="warning", max_lines=10, count_type="added"),
        build_context(repo, mode="ci"),
    )

    assert [item.severity for item in findings] == ["warning", "info"]
    breach, breakdown = findings
    assert breach.file == DIFF_SIZE_SUBJECT
    assert "11 added lines (limit: 10)" in breach.detail
    assert breakdown.rule_id == "pr_size_breakdown"
    assert breakdown.rule_name == "Large Diff - File Breakdown"
    assert breakdown.file == BREAKDOWN_SUBJECT
    assert breakdown.detail == "Top files by line changes:\n7\t0\tsrc/a.py\n4\t0\tsrc/b.py"


def test_diff_size_at_limit_passes(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    write_file(repo, "src/a.py", build_numbered_lines("a", 10))
    commit_all(repo, "ten lines")

    findings = DiffSizeEvaluator().evaluate(
        rule("diff_size", max_lines=10), build_context(repo, mode="ci")
    )
    assert findings == []


def test_diff_size_counts_untracked_lines_only_locally(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    write_file(repo, "scratch.txt", build_numbered_lines("s", 11))
    size_rule = rule("diff_size", max_lines=10)

    assert len(DiffSizeEvaluator().evaluate(size_rule, build_context(repo))) == 2
    assert DiffSizeEvaluator().evaluate(size_rule, build_context(repo, mode="ci")) == []


def test_diff_size_removed_and_total_counts(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"old.txt": build_numbered_lines("o", 6)})
    write_file(repo, "old.txt", build_numbered_lines("o", 2))
    write_file(repo, "new.txt", build_numbered_lines("n", 3))
    commit_all(repo, "shrink")
    ctx = build_context(repo, mode="ci")

    evaluator = DiffSizeEvaluator()
    assert evaluator.evaluate(rule("diff_size", max_lines=4, count_type="removed"), ctx) == []
    removed = evaluator.evaluate(rule("diff_size", max_lines=3, count_type="removed"), ctx)
    assert "4 removed lines" in removed[0].detail
    total = evaluator.evaluate(rule("diff_size", max_lines=6, count_type="total"), ctx)
    assert "7 total lines" in total[0].detail


def test_diff_size_respects_global_excludes(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    write_file(repo, "package-lock.json", build_numbered_lines("lock", 50))
    commit_all(repo, "lockfile")

    ctx = build_context(repo, mode="ci", exclude_files=["*.json"])
    assert DiffSizeEvaluator().evaluate(rule("diff_size", max_lines=10), ctx) == []


def test_branch_naming_accepts_matching_branch(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    ctx = build_context(repo, source_branch="feature/login")
    assert (
        BranchNamingEvaluator().evaluate(
            rule("branch_naming", allowed_patterns=["feature/*", "fix/*"]), ctx
        )
        == []
    )


def test_branch_naming_lists_allowed_patterns_verbatim(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    ctx = build_context(repo, source_branch="wip")

    findings = BranchNamingEvaluator().evaluate(
        rule("branch_naming", allowed_patterns=["feature/*", "fix/*"]), ctx
    )
    assert len(findings) == 1
    assert findings[0].file == BRANCH_SUBJECT
    assert findings[0].detail == "Branch 'wip' does not match allowed patterns: feature/*, fix/*"


def test_branch_naming_is_gated_by_target_branch(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"keep.txt": "keep\n"})
    ctx = build_context(repo, source_branch="wip", target_branch="main")

    findings = BranchNamingEvaluator().evaluate(
        rule("branch_naming", allowed_patterns=["feature/*"], target_branches=["release/*"]), ctx
    )
    assert findings == []


def test_dependent_file_fires_without_companion_change(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"src/api.py": "v = 1\n", "CHANGELOG.md": "# log\n"})
    write_file(repo, "src/api.py", "v = 2\n")
    dependent_rule = rule(
        "dependent_file", source_patterns=["src/*.py"], dependent_files=["CHANGELOG.md"]
    )

    findings = DependentFileEvaluator().evaluate(dependent_rule, build_context(repo))
    assert len(findings) == 1
    assert findings[0].file == "src/api.py"
    assert findings[0].detail == (
        "Modified source files: src/api.py. Expected dependent files to be updated: CHANGELOG.md"
    )

    write_file(repo, "CHANGELOG.md", "# log\n- api bump\n")
    assert DependentFileEvaluator().evaluate(dependent_rule, build_context(repo)) == []


def test_dependent_file_source_folders_restrict_triggers(tmp_path: Path) -> None:
    repo = baseline_repo(tmp_path, {"src/api.py": "v = 1\n", "lib/util.py": "u = 1\n"})
    write_file(repo, "src/api.py", "v = 2\n")
    dependent_rule = rule(
        "dependent_file",
        source_folders=["lib/"],
        source_patterns=["*.py"],
        dependent_files=["docs/*.md"],
    )
    assert DependentFileEvaluator().evaluate(dependent_rule, build_context(repo)) == []

    write_file(repo, "lib/util.py", "u = 2\n")
    findings = DependentFileEvaluator().evaluate(dependent_rule, build_context(repo))
    assert [item.file for item in findings] == ["lib/util.py"]
