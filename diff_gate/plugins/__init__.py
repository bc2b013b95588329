"""Extension boundary: custom check scripts and in-process check plugins."""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from importlib.metadata import EntryPoint, entry_points
from pathlib import Path
from typing import Any, Protocol

from diff_gate.changeset import ChangeSet
from diff_gate.config import SEVERITIES
from diff_gate.report import ResultAggregator
from diff_gate.rules.base import Finding

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "diff_gate.checks"
FAILURE_RULE_ID = "custom_check_failure"
FAILURE_RULE_NAME = "Custom Check Failure"

AddResult = Callable[..., None]


class ExtensionError(RuntimeError):
    """Raised when an extension terminates abnormally or returns unusable output."""


@dataclass(frozen=True, slots=True)
class ExtensionContext:
    """Serializable view of one run handed to every extension."""

    repo: Path
    base_branch: str
    base_ref: str | None
    source_branch: str
    target_branch: str
    mode: str
    rules_file: Path
    output: Path
    change_set: ChangeSet = field(default_factory=ChangeSet)

    def to_dict(self) -> dict[str, Any]:
        changes = self.change_set.to_dict()
        changes.pop("base_ref")
        return {
            "repo": str(self.repo),
            "base_branch": self.base_branch,
            "base_ref": self.base_ref,
            "source_branch": self.source_branch,
            "target_branch": self.target_branch,
            "mode": self.mode,
            "rules_file": str(self.rules_file),
            "output": str(self.output),
            "changes": changes,
        }

    def environment(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(
            {
                "BASE_BRANCH": self.base_branch,
                "RULES_FILE": str(self.rules_file),
                "OUTPUT_FILE": str(self.output),
                "PROJECT_ROOT": str(self.repo),
                "DIFF_GATE_MODE": self.mode,
            }
        )
        return env


@dataclass(slots=True)
class ExtensionRun:
    """Per-extension execution record."""

    extension_id: str
    kind: str
    status: str = "pending"
    reason: str = ""
    elapsed_ms: int | None = None
    findings: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "extension_id": self.extension_id,
            "kind": self.kind,
            "status": self.status,
            "reason": self.reason,
            "elapsed_ms": self.elapsed_ms,
            "findings": self.findings,
        }


class Extension(Protocol):
    extension_id: str
    kind: str

    def run(self, context: ExtensionContext) -> list[Finding]:
        """Return the extension's findings or raise on abnormal termination."""


class CheckPlugin:
    """Base class for in-process checks.

    Subclasses set ``check_id`` and implement ``check``, reporting through the
    ``add_result`` callback exactly like a built-in evaluator would.
    """

    check_id: str = ""

    def check(self, context: ExtensionContext, add_result: AddResult) -> None:
        raise NotImplementedError


class _FindingBuffer:
    """Collects findings for one extension so a failure can discard them."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.findings: list[Finding] = []

    def add_result(
        self,
        severity: str,
        rule_id: str,
        rule_name: str,
        message: str,
        detail: str = "",
        file: str = "",
        line: int = 0,
    ) -> None:
        self.findings.append(
            _make_finding(
                {
                    "severity": severity,
                    "rule_id": rule_id,
                    "rule_name": rule_name,
                    "message": message,
                    "detail": detail,
                    "file": file,
                    "line": line,
                },
                source=self.source,
            )
        )


class CallableExtension:
    """Run a ``check(context, add_result)`` callable in process."""

    kind = "plugin"

    def __init__(
        self, extension_id: str, func: Callable[[ExtensionContext, AddResult], Any]
    ) -> None:
        self.extension_id = extension_id
        self._func = func

    def run(self, context: ExtensionContext) -> list[Finding]:
        buffer = _FindingBuffer(self.extension_id)
        self._func(context, buffer.add_result)
        return buffer.findings


class EntryPointExtension:
    """Lazily load a check registered under the ``diff_gate.checks`` group."""

    kind = "plugin"

    def __init__(self, entry_point: EntryPoint) -> None:
        self.extension_id = entry_point.name
        self._entry_point = entry_point

    def run(self, context: ExtensionContext) -> list[Finding]:
        loaded = self._entry_point.load()
        return as_extension(loaded, name=self.extension_id).run(context)


class ScriptExtension:
    """Run an executable from the custom-checks directory.

    The script gets the run context as JSON on stdin and the classic
    ``BASE_BRANCH``/``RULES_FILE``/``OUTPUT_FILE`` variables in its
    environment. Findings come back on stdout as a JSON array or JSON lines.
    """

    kind = "script"

    def __init__(self, path: Path, extension_id: str) -> None:
        self.path = path
        self.extension_id = extension_id

    def command(self) -> list[str]:
        suffix = self.path.suffix.lower()
        if suffix == ".sh":
            return ["bash", str(self.path)]
        if suffix == ".py":
            return [sys.executable, str(self.path)]
        return [str(self.path)]

    def run(self, context: ExtensionContext) -> list[Finding]:
        try:
            completed = subprocess.run(
                self.command(),
                cwd=context.repo,
                input=json.dumps(context.to_dict()),
                env=context.environment(),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise ExtensionError(f"Unable to execute {self.extension_id}: {exc}") from exc

        if completed.stderr.strip():
            logger.debug("%s stderr: %s", self.extension_id, completed.stderr.strip())
        if completed.returncode != 0:
            message = completed.stderr.strip().splitlines()[-1:] or ["no stderr output"]
            raise ExtensionError(f"exited with status {completed.returncode}: {message[0]}")
        return parse_script_output(completed.stdout, source=self.extension_id)


def as_extension(obj: Any, *, name: str) -> Extension:
    """Adapt a ``CheckPlugin`` subclass/instance or a plain callable."""
    if isinstance(obj, type) and issubclass(obj, CheckPlugin):
        obj = obj()
    if isinstance(obj, CheckPlugin):
        return CallableExtension(obj.check_id or name, obj.check)
    if callable(obj):
        return CallableExtension(name, obj)
    raise ExtensionError(f"Extension '{name}' is neither a CheckPlugin nor callable")


def discover_scripts(custom_dir: Path) -> list[ScriptExtension]:
    """Collect runnable scripts under ``custom_dir``, sorted by relative path."""
    if not custom_dir.is_dir():
        logger.info("No custom checks directory found at %s", custom_dir)
        return []

    scripts: list[ScriptExtension] = []
    for path in sorted(custom_dir.rglob("*")):
        if not path.is_file():
            continue
        runnable = path.suffix.lower() in {".sh", ".py"} or os.access(path, os.X_OK)
        if not runnable:
            logger.debug("Skipping non-executable file in custom checks: %s", path)
            continue
        scripts.append(ScriptExtension(path, path.relative_to(custom_dir).as_posix()))
    return scripts


def discover_entry_points() -> list[EntryPointExtension]:
    found = entry_points(group=ENTRY_POINT_GROUP)
    return [EntryPointExtension(item) for item in sorted(found, key=lambda ep: ep.name)]


def discover_extensions(
    custom_dir: Path,
    *,
    include_entry_points: bool = True,
    plugins: Iterable[Any] = (),
) -> list[Extension]:
    """Scripts first, then entry-point plugins, then explicitly supplied plugins."""
    extensions: list[Extension] = list(discover_scripts(custom_dir))
    if include_entry_points:
        extensions.extend(discover_entry_points())
    for index, plugin in enumerate(plugins):
        name = getattr(plugin, "check_id", "") or getattr(plugin, "__name__", f"plugin-{index}")
        extensions.append(as_extension(plugin, name=name))
    return extensions


def run_extensions(
    extensions: Iterable[Extension],
    context: ExtensionContext,
    aggregator: ResultAggregator,
) -> list[ExtensionRun]:
    """Run each extension in order and merge its findings into ``aggregator``.

    A failing extension contributes exactly one ``custom_check_failure`` error
    and none of the findings it produced before failing.
    """
    runs: list[ExtensionRun] = []
    for extension in extensions:
        run = ExtensionRun(extension_id=extension.extension_id, kind=extension.kind)
        logger.info("Running custom check: %s", extension.extension_id)
        start = time.perf_counter()
        try:
            findings = extension.run(context)
        except Exception as exc:  # noqa: BLE001
            run.status = "failed"
            run.reason = f"{exc.__class__.__name__}: {exc}"
            logger.error("Custom check failed: %s (%s)", extension.extension_id, run.reason)
            logger.debug("Custom check traceback", exc_info=True)
            aggregator.add_result(
                "error",
                FAILURE_RULE_ID,
                FAILURE_RULE_NAME,
                f"The custom check {extension.extension_id} failed to execute properly.",
                run.reason,
                extension.extension_id,
            )
        else:
            for finding in findings:
                aggregator.add(finding)
            run.status = "ran"
            run.reason = "completed"
            run.findings = len(findings)
            logger.info("Custom check completed: %s", extension.extension_id)
        finally:
            run.elapsed_ms = int((time.perf_counter() - start) * 1000)
        runs.append(run)
    return runs


def parse_script_output(output: str, *, source: str) -> list[Finding]:
    """Decode findings printed by a script as a JSON array or JSON lines."""
    text = output.strip()
    if not text:
        return []
    try:
        if text.startswith("["):
            payloads = json.loads(text)
        else:
            payloads = [json.loads(line) for line in text.splitlines() if line.strip()]
    except json.JSONDecodeError as exc:
        raise ExtensionError(f"{source} printed invalid JSON: {exc}") from exc

    if not isinstance(payloads, list):
        raise ExtensionError(f"{source} must print a JSON array of findings")
    return [_make_finding(payload, source=source) for payload in payloads]


def _make_finding(payload: Any, *, source: str) -> Finding:
    if not isinstance(payload, dict):
        raise ExtensionError(f"{source} produced a finding that is not an object")

    severity = payload.get("severity")
    if severity not in SEVERITIES:
        raise ExtensionError(
            f"{source} produced an invalid severity {severity!r}. "
            f"Expected one of: {', '.join(SEVERITIES)}"
        )
    rule_id = payload.get("rule_id")
    if not isinstance(rule_id, str) or not rule_id:
        raise ExtensionError(f"{source} produced a finding without rule_id")
    line = payload.get("line", 0)
    if isinstance(line, bool) or not isinstance(line, int) or line < 0:
        raise ExtensionError(f"{source} produced an invalid line number {line!r}")

    return Finding(
        severity=severity,
        rule_id=rule_id,
        rule_name=str(payload.get("rule_name") or rule_id),
        message=str(payload.get("message", "")),
        detail=str(payload.get("detail", payload.get("details", ""))),
        file=str(payload.get("file", "")),
        line=line,
    )
