"""Configuration loading for diff-gate.

Two layers: JSON rule documents (built-in and user supplied) describing the
rules and gate settings, and optional TOML project defaults for the CLI.
"""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SEVERITIES = ("error", "warning", "info")
BUILTIN_RULES_RESOURCE = "core_rules.json"
CONFIG_FILENAMES = (".diff-gate.toml", "diff-gate.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("diff_gate", "diff-gate")


@dataclass(frozen=True, slots=True)
class RuleDefinition:
    """One declarative rule, immutable once loaded."""

    id: str
    type: str
    severity: str
    name: str = ""
    description: str = ""
    message: str = ""
    target_branches: tuple[str, ...] | None = None
    patterns: tuple[str, ...] = ()
    file_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    max_size_kb: int | None = None
    max_lines: int = 500
    count_type: str = "added"
    allowed_patterns: tuple[str, ...] = ()
    source_patterns: tuple[str, ...] = ()
    source_folders: tuple[str, ...] = ()
    dependent_files: tuple[str, ...] = ()
    source: str | None = field(default=None, compare=False)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.display_name,
            "type": self.type,
            "severity": self.severity,
            "target_branches": (
                list(self.target_branches) if self.target_branches is not None else None
            ),
            "source": self.source,
        }


@dataclass(slots=True)
class GateSettings:
    """Pass/fail thresholds and global path filters."""

    fail_on_errors: bool = True
    max_warnings: int | None = None
    exclude_files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fail_on_errors": self.fail_on_errors,
            "max_warnings": self.max_warnings,
            "exclude_files": list(self.exclude_files),
        }


@dataclass(slots=True)
class RuleDocument:
    """A parsed ``{"rules": [...], "settings": {...}}`` document."""

    source: str
    rules: list[RuleDefinition] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


@dataclass(slots=True)
class GateConfig:
    """All rule documents for a run, in evaluation order, plus merged settings."""

    documents: list[RuleDocument]
    settings: GateSettings
    rules_file: Path | None = None

    @property
    def rules(self) -> list[RuleDefinition]:
        return [rule for document in self.documents for rule in document.rules]

    @property
    def skipped(self) -> list[str]:
        return [item for document in self.documents for item in document.skipped]


@dataclass(slots=True)
class ProjectConfig:
    """CLI defaults resolved from project files."""

    base_branch: str = "main"
    target_branch: str | None = None
    rules_file: str = "rules.json"
    custom_dir: str = "custom-checks"
    output: str = "diff-gate-results.json"
    format: str = "human"
    include_builtin: bool = True
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_branch": self.base_branch,
            "target_branch": self.target_branch,
            "rules_file": self.rules_file,
            "custom_dir": self.custom_dir,
            "output": self.output,
            "format": self.format,
            "include_builtin": self.include_builtin,
            "source": self.source,
        }


def load_gate_config(rules_file: Path, *, include_builtin: bool = True) -> GateConfig:
    """Load built-in and user rule documents; built-in rules evaluate first.

    Raises ``ValueError`` when the user document is missing or unreadable.
    """
    documents: list[RuleDocument] = []
    if include_builtin:
        builtin = builtin_rules_document()
        if builtin is not None:
            documents.append(builtin)
    documents.append(load_rule_document(rules_file))

    merged: dict[str, Any] = {}
    for document in documents:
        merged.update(document.settings)
    return GateConfig(
        documents=documents,
        settings=parse_settings(merged),
        rules_file=rules_file,
    )


def builtin_rules_document() -> RuleDocument | None:
    """Return the rule set shipped with the package, if present."""
    resource = resources.files("diff_gate").joinpath(BUILTIN_RULES_RESOURCE)
    if not resource.is_file():
        logger.warning("Built-in rules not found at %s", resource)
        return None
    text = resource.read_text(encoding="utf-8")
    return parse_rule_document(_loads_json(text, source="builtin"), source="builtin")


def load_rule_document(path: Path) -> RuleDocument:
    """Read and parse one JSON rule document."""
    if not path.is_file():
        raise ValueError(f"Rules file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Unable to read rules file {path}: {exc}") from exc
    return parse_rule_document(_loads_json(text, source=str(path)), source=str(path))


def parse_rule_document(loaded: Any, *, source: str) -> RuleDocument:
    """Parse rules leniently and settings strictly.

    Malformed rule entries are logged and skipped so a single bad rule never
    aborts a run.
    """
    if not isinstance(loaded, dict):
        raise ValueError(f"{source}: rule document must be a JSON object")
    raw_rules = loaded.get("rules", [])
    if not isinstance(raw_rules, list):
        raise ValueError(f"{source}: rules must be a list")
    settings = _as_table(loaded.get("settings"), f"{source}: settings")
    parse_settings(settings)

    document = RuleDocument(source=source, settings=dict(settings))
    seen: set[str] = set()
    for index, raw in enumerate(raw_rules):
        try:
            rule = parse_rule(raw, source=source)
        except ValueError as exc:
            logger.warning("Skipping malformed rule #%d in %s: %s", index, source, exc)
            document.skipped.append(f"{source}#{index}: {exc}")
            continue
        if rule.id in seen:
            logger.warning("Duplicate rule id '%s' in %s", rule.id, source)
        seen.add(rule.id)
        document.rules.append(rule)
    return document


def parse_rule(raw: Any, *, source: str | None = None) -> RuleDefinition:
    """Build a ``RuleDefinition`` from a JSON object; raises ``ValueError`` when malformed."""
    if not isinstance(raw, dict):
        raise ValueError("rule must be an object")
    rule_id = _as_str(raw.get("id"), "id")
    if not rule_id:
        raise ValueError("id must not be empty")
    severity = _as_choice(raw.get("severity"), set(SEVERITIES), f"{rule_id}.severity")

    raw_targets = raw.get("target_branches")
    target_branches = (
        None
        if raw_targets is None
        else tuple(_as_str_list(raw_targets, f"{rule_id}.target_branches"))
    )
    max_size = raw.get("max_size_kb")
    return RuleDefinition(
        id=rule_id,
        type=_as_str(raw.get("type", ""), f"{rule_id}.type"),
        severity=severity,
        name=_as_optional_str(raw.get("name"), f"{rule_id}.name"),
        description=_as_optional_str(raw.get("description"), f"{rule_id}.description"),
        message=_as_optional_str(raw.get("message"), f"{rule_id}.message"),
        target_branches=target_branches,
        patterns=_as_str_tuple(raw.get("patterns"), f"{rule_id}.patterns"),
        file_patterns=_as_str_tuple(raw.get("file_patterns"), f"{rule_id}.file_patterns"),
        exclude_patterns=_as_str_tuple(
            raw.get("exclude_patterns"), f"{rule_id}.exclude_patterns"
        ),
        max_size_kb=None if max_size is None else _as_int(max_size, f"{rule_id}.max_size_kb"),
        max_lines=_as_int(raw.get("max_lines", 500), f"{rule_id}.max_lines"),
        count_type=_as_choice(
            raw.get("count_type", "added"),
            {"added", "removed", "total"},
            f"{rule_id}.count_type",
        ),
        allowed_patterns=_as_str_tuple(
            raw.get("allowed_patterns"), f"{rule_id}.allowed_patterns"
        ),
        source_patterns=_as_str_tuple(raw.get("source_patterns"), f"{rule_id}.source_patterns"),
        source_folders=_as_str_tuple(raw.get("source_folders"), f"{rule_id}.source_folders"),
        dependent_files=_as_str_tuple(raw.get("dependent_files"), f"{rule_id}.dependent_files"),
        source=source,
    )


def parse_settings(value: dict[str, Any]) -> GateSettings:
    raw_max = value.get("max_warnings")
    return GateSettings(
        fail_on_errors=_as_bool(value.get("fail_on_errors", True), "settings.fail_on_errors"),
        max_warnings=None if raw_max is None else _as_int(raw_max, "settings.max_warnings"),
        exclude_files=_as_str_list(value.get("exclude_files"), "settings.exclude_files"),
    )


def load_project_config(repo: Path, config_path: Path | None = None) -> ProjectConfig:
    """Load CLI defaults from explicit path or repository-local files with precedence."""
    repo = repo.resolve()
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (repo / config_path)
        if not resolved.exists():
            raise ValueError(f"Config file does not exist: {resolved}")
        mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
        return _from_mapping(mapping, source=str(resolved))

    for filename in CONFIG_FILENAMES:
        resolved = repo / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
            return _from_mapping(mapping, source=str(resolved))

    pyproject_path = repo / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_toml(pyproject_path), source_path=pyproject_path)
        if mapping:
            return _from_mapping(mapping, source=str(pyproject_path))

    return ProjectConfig()


def _loads_json(text: str, *, source: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {source}: {exc}") from exc


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    if source_path.name == PYPROJECT_FILENAME:
        section = _find_pyproject_tool_section(loaded)
        return section if section is not None else {}

    tool_section = _find_pyproject_tool_section(loaded)
    if tool_section is not None:
        return tool_section
    return loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, source: str) -> ProjectConfig:
    defaults = ProjectConfig()
    raw_target = mapping.get("target_branch")
    return ProjectConfig(
        base_branch=_as_str(mapping.get("base_branch", defaults.base_branch), "base_branch"),
        target_branch=None if raw_target is None else _as_str(raw_target, "target_branch"),
        rules_file=_as_str(mapping.get("rules_file", defaults.rules_file), "rules_file"),
        custom_dir=_as_str(mapping.get("custom_dir", defaults.custom_dir), "custom_dir"),
        output=_as_str(mapping.get("output", defaults.output), "output"),
        format=_as_choice(mapping.get("format", defaults.format), {"human", "json"}, "format"),
        include_builtin=_as_bool(
            mapping.get("include_builtin", defaults.include_builtin), "include_builtin"
        ),
        source=source,
    )


def _as_table(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a table/object")
    return value


def _as_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field_name} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"{field_name} must be a list of strings")
        items.append(item)
    return items


def _as_str_tuple(value: Any, field_name: str) -> tuple[str, ...]:
    return tuple(_as_str_list(value, field_name))


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    return value


def _as_optional_str(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    return _as_str(value, field_name)


def _as_choice(raw: Any, allowed: set[str], field_name: str) -> str:
    value = str(raw).lower()
    if value not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ValueError(f"{field_name} must be one of: {choices}")
    return value


def _as_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"{field_name} must be an integer")
    return raw


def _as_bool(raw: Any, field_name: str) -> bool:
    if not isinstance(raw, bool):
        raise ValueError(f"{field_name} must be a boolean")
    return raw
