"""CLI entrypoint for diff-gate."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated

import typer

from diff_gate import __version__
from diff_gate.config import GateConfig, ProjectConfig, load_gate_config, load_project_config
from diff_gate.context import ExecutionContext
from diff_gate.engine import GateOptions, run_gate
from diff_gate.output import render_human, render_json, write_report
from diff_gate.rules import build_evaluators, canonical_rule_type, list_rule_types

app = typer.Typer(
    name="diff-gate",
    no_args_is_help=True,
    help="Evaluate pending changes against declarative rules and gate merges.",
)

_LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
_CLI_HANDLER: logging.Handler | None = None

RepoOption = Annotated[Path, typer.Option(help="Repository path.")]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to a diff-gate TOML config file."),
]
RulesOption = Annotated[
    Path | None,
    typer.Option("--rules", envvar="RULES_FILE", help="User rules JSON file."),
]
BuiltinOption = Annotated[
    bool | None,
    typer.Option("--builtin/--no-builtin", help="Evaluate the built-in rule set first."),
]
FormatOption = Annotated[
    str | None, typer.Option(help="Output format: human|json.", show_default="human")
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", envvar="VERBOSE", help="Enable debug logging."),
]


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
) -> None:
    """Root command callback."""
    _ = version


@app.command("check")
def check_command(
    repo: RepoOption = Path("."),
    base: Annotated[
        str | None, typer.Option(envvar="BASE_BRANCH", help="Base branch to compare against.")
    ] = None,
    target: Annotated[
        str | None, typer.Option(help="Target branch used for rule applicability.")
    ] = None,
    rules: RulesOption = None,
    custom_dir: Annotated[
        Path | None,
        typer.Option("--custom-dir", envvar="CUSTOM_DIR", help="Custom checks directory."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", envvar="OUTPUT_FILE", help="Report JSON output path."),
    ] = None,
    builtin: BuiltinOption = None,
    format: FormatOption = None,
    mode: Annotated[str, typer.Option(help="Execution context: auto|ci|local.")] = "auto",
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Run every rule and custom check against the current change set."""
    _configure_logging(verbose)
    repo = repo.resolve()
    project = _load_project_or_raise(repo, config_file)
    output_format = _choice_or_default(
        value=format, default=project.format, allowed={"human", "json"}, field_name="--format"
    )
    try:
        execution = ExecutionContext.detect(mode=mode)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--mode") from exc

    options = GateOptions(
        repo=repo,
        base_branch=base or project.base_branch,
        rules_file=_in_repo(repo, rules or Path(project.rules_file)),
        custom_dir=_in_repo(repo, custom_dir or Path(project.custom_dir)),
        output=_in_repo(repo, output or Path(project.output)),
        execution=execution,
        target_branch=target or project.target_branch,
        include_builtin=project.include_builtin if builtin is None else builtin,
    )
    config = _load_gate_config_or_raise(options.rules_file, include_builtin=options.include_builtin)
    gate_run = run_gate(options, config=config)

    try:
        write_report(gate_run.report, options.output)
    except (OSError, TypeError) as exc:
        typer.echo(f"error: unable to write report {options.output}: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    if output_format == "json":
        typer.echo(render_json(gate_run.report))
    else:
        typer.echo(render_human(gate_run))
        typer.echo(f"Report written to: {options.output}")

    if not gate_run.report.summary.passed:
        raise typer.Exit(code=1)


@app.command("rules")
def rules_command(
    repo: RepoOption = Path("."),
    rules: RulesOption = None,
    builtin: BuiltinOption = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List loaded rules in evaluation order."""
    _configure_logging(verbose)
    output_format = _choice_or_default(
        value=format, default="human", allowed={"human", "json"}, field_name="--format"
    )
    repo = repo.resolve()
    project = _load_project_or_raise(repo, config_file)
    config = _load_gate_config_or_raise(
        _in_repo(repo, rules or Path(project.rules_file)),
        include_builtin=project.include_builtin if builtin is None else builtin,
    )
    known_types = set(build_evaluators())

    if output_format == "json":
        payload = {
            "rules": [
                {**rule.to_dict(), "known_type": canonical_rule_type(rule.type) in known_types}
                for rule in config.rules
            ],
            "rule_types": [
                {"type": item.rule_type, "name": item.name, "description": item.description}
                for item in list_rule_types()
            ],
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = ["Rules (evaluation order):"]
    for rule in config.rules:
        marker = "" if canonical_rule_type(rule.type) in known_types else " (unknown type)"
        lines.append(
            f"- {rule.id} [{rule.severity}] {rule.type}{marker} - {rule.source or 'unknown source'}"
        )
    lines.append("Supported rule types:")
    lines.extend(f"- {item.rule_type}: {item.description}" for item in list_rule_types())
    typer.echo("\n".join(lines))


@app.command("config-validate")
def config_validate_command(
    repo: RepoOption = Path("."),
    rules: RulesOption = None,
    builtin: BuiltinOption = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Validate rule documents and report the effective settings."""
    _configure_logging(verbose)
    output_format = _choice_or_default(
        value=format, default="human", allowed={"human", "json"}, field_name="--format"
    )
    repo = repo.resolve()
    project = _load_project_or_raise(repo, config_file)
    config = _load_gate_config_or_raise(
        _in_repo(repo, rules or Path(project.rules_file)),
        include_builtin=project.include_builtin if builtin is None else builtin,
    )
    payload = {
        "ok": True,
        "project_config": project.source,
        "documents": [document.source for document in config.documents],
        "rule_count": len(config.rules),
        "skipped": config.skipped,
        "settings": config.settings.to_dict(),
    }
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    lines = [
        "Rules are valid.",
        f"- project config: {payload['project_config'] or 'defaults'}",
        f"- documents: {', '.join(payload['documents'])}",
        f"- rules: {payload['rule_count']}",
        f"- settings: {payload['settings']}",
    ]
    if config.skipped:
        lines.append(f"- skipped entries ({len(config.skipped)}):")
        lines.extend(f"  - {item}" for item in config.skipped)
    typer.echo("\n".join(lines))


def main() -> None:
    """Console script entrypoint."""
    app()


def _configure_logging(verbose: bool) -> None:
    global _CLI_HANDLER
    package_logger = logging.getLogger("diff_gate")
    if _CLI_HANDLER is not None:
        package_logger.removeHandler(_CLI_HANDLER)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    _CLI_HANDLER = handler


def _in_repo(repo: Path, path: Path) -> Path:
    return path if path.is_absolute() else repo / path


def _load_project_or_raise(repo: Path, config_file: Path | None) -> ProjectConfig:
    try:
        return load_project_config(repo, config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _load_gate_config_or_raise(rules_file: Path, *, include_builtin: bool) -> GateConfig:
    try:
        return load_gate_config(rules_file, include_builtin=include_builtin)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--rules") from exc


def _choice_or_default(
    *,
    value: str | None,
    default: str,
    allowed: set[str],
    field_name: str,
) -> str:
    resolved = (value or default).lower()
    if resolved not in allowed:
        choices = ", ".join(sorted(allowed))
        raise typer.BadParameter(f"{field_name} must be one of: {choices}", param_hint=field_name)
    return resolved
