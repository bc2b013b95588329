"""One full gate run: resolve changes, evaluate rules, run extensions, build the report."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from glob import escape
from pathlib import Path
from typing import Any

from diff_gate.changeset import REMOTE_NAME, BaseRef, ChangeSet, ChangeSetResolver
from diff_gate.config import GateConfig, load_gate_config
from diff_gate.context import ExecutionContext
from diff_gate.git import GitError, get_current_branch, get_head_revision
from diff_gate.line_mapper import LineMapper
from diff_gate.plugins import ExtensionContext, ExtensionRun, discover_extensions, run_extensions
from diff_gate.report import Report, ResultAggregator
from diff_gate.rules.base import EvaluationContext
from diff_gate.rules.dispatcher import RuleDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GateOptions:
    """Resolved inputs for one run."""

    repo: Path
    base_branch: str
    rules_file: Path
    custom_dir: Path
    output: Path
    execution: ExecutionContext
    target_branch: str | None = None
    include_builtin: bool = True
    include_entry_points: bool = True
    plugins: tuple[Any, ...] = ()


@dataclass(slots=True)
class GateRun:
    """Everything a run produced, for rendering."""

    report: Report
    base: BaseRef
    change_set: ChangeSet
    execution: ExecutionContext
    extension_runs: list[ExtensionRun] = field(default_factory=list)


def run_gate(options: GateOptions, *, config: GateConfig | None = None) -> GateRun:
    """Run the gate end to end.

    Configuration errors (``ValueError``) propagate before any evaluation.
    """
    if config is None:
        config = load_gate_config(options.rules_file, include_builtin=options.include_builtin)
    repo = options.repo
    execution = options.execution
    logger.info("Running in %s mode against base branch %s", execution.mode, options.base_branch)

    resolver = ChangeSetResolver(repo, options.base_branch, execution)
    base, change_set = _resolve_changes(resolver)
    change_set = change_set.without(
        [*config.settings.exclude_files, *_report_patterns(repo, options.output)]
    )

    source_branch = resolve_source_branch(repo, execution)
    target_branch = resolve_target_branch(options.base_branch, options.target_branch)
    ctx = EvaluationContext(
        repo=repo,
        change_set=change_set,
        resolver=resolver,
        line_mapper=LineMapper(resolver, change_set),
        execution=execution,
        source_branch=source_branch,
        target_branch=target_branch,
        exclude_files=list(config.settings.exclude_files),
    )

    aggregator = ResultAggregator()
    RuleDispatcher().run(config.rules, ctx, aggregator)

    extensions = discover_extensions(
        options.custom_dir,
        include_entry_points=options.include_entry_points,
        plugins=options.plugins,
    )
    extension_runs = run_extensions(
        extensions,
        ExtensionContext(
            repo=repo,
            base_branch=options.base_branch,
            base_ref=change_set.base_ref,
            source_branch=source_branch,
            target_branch=target_branch,
            mode=execution.mode,
            rules_file=options.rules_file,
            output=options.output,
            change_set=change_set,
        ),
        aggregator,
    )

    report = aggregator.finalize(
        settings=config.settings,
        branch=source_branch,
        base_branch=options.base_branch,
        target_branch=target_branch,
        commit=get_head_revision(repo),
    )
    return GateRun(
        report=report,
        base=base,
        change_set=change_set,
        execution=execution,
        extension_runs=extension_runs,
    )


def resolve_source_branch(repo: Path, execution: ExecutionContext) -> str:
    """Checked-out branch, or the CI head-branch override when HEAD is detached."""
    branch = get_current_branch(repo)
    if branch in {None, "HEAD"} and execution.head_branch_override:
        return execution.head_branch_override
    return branch or "HEAD"


def resolve_target_branch(base_branch: str, explicit: str | None = None) -> str:
    if explicit:
        return explicit
    prefix = f"{REMOTE_NAME}/"
    return base_branch[len(prefix):] if base_branch.startswith(prefix) else base_branch


def _resolve_changes(resolver: ChangeSetResolver) -> tuple[BaseRef, ChangeSet]:
    base = resolver.resolve_base_ref()
    if not base.resolved:
        logger.warning(
            "Base reference '%s' could not be resolved; continuing with an empty change set",
            base.requested,
        )
        return base, ChangeSet()
    try:
        return base, resolver.resolve(base)
    except GitError as exc:
        logger.warning("Unable to enumerate changes against %s: %s", base.ref, exc)
        return base, ChangeSet()


def _report_patterns(repo: Path, output: Path) -> Iterable[str]:
    target = output if output.is_absolute() else repo / output
    try:
        relative = target.resolve().relative_to(repo.resolve())
    except ValueError:
        return []
    return [escape(relative.as_posix())]
