"""
Nested tool wiring.

A host tool absorbs commands from separately built binaries. Which binary
provides which host command comes from two places:

    - code-level defaults (ToolDefinition.default_includes)
    - the workspace wiring document, e.g. buildkit_master.toml:

        [nested_tools.testkit]
        binary = "testkit"
        mode = "multi_command"
        commands = { buildkittest = "test", buildkitbaseline = "baseline" }

        [nested_tools.astgen]
        mode = "standalone"

Document entries replace code entries with the same binary name outright.
Only the binaries owning a requested command are queried (via
--dump-definitions); help display passes requested=None to query them all.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Optional

from nestkit.args import DUMP_FLAG
from nestkit.binaries import is_binary_on_path, resolve_binary, run_binary
from nestkit.config import load_master_document, wiring_file_name
from nestkit.definitions import CommandDefinition, ToolDefinition
from nestkit.errors import (
    MissingBinaryError,
    SelfDescriptionError,
    UnmappedNestedCommandError,
    WiringQueryError,
)
from nestkit.executors import DelegatingExecutor
from nestkit.serializer import deserialize


class WiringMode(Enum):
    MULTI_COMMAND = "multi_command"
    STANDALONE = "standalone"


@dataclass(frozen=True)
class WiringEntry:
    """
    How one nested binary is wired into a host.

    `binary` never carries a platform suffix. `commands` maps host command
    names to nested command names and is only used in multi-command mode;
    a standalone tool contributes one host command named after the binary.
    """

    binary: str
    mode: WiringMode = WiringMode.STANDALONE
    commands: Optional[MappingProxyType] = None

    def __post_init__(self):
        if self.commands is not None:
            object.__setattr__(self, "commands", MappingProxyType(dict(self.commands)))

    def __hash__(self):
        return hash((self.binary, self.mode))

    @property
    def has_commands(self) -> bool:
        return bool(self.commands)

    @property
    def host_command_names(self) -> list:
        if self.mode is WiringMode.STANDALONE:
            return [self.binary]
        return list(self.commands or {})


@dataclass(frozen=True)
class WiringResult:
    commands: tuple = ()
    executors: MappingProxyType = field(
        default_factory=lambda: MappingProxyType({})
    )
    warnings: tuple = ()
    errors: tuple = ()
    unavailable: MappingProxyType = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


def parse_nested_tools(section) -> dict:
    """Parse a [nested_tools] table into WiringEntry values keyed by binary."""
    entries = {}
    if not isinstance(section, dict):
        return entries
    for key, value in section.items():
        if not isinstance(value, dict):
            continue
        binary = str(value.get("binary") or key)
        mode = (
            WiringMode.MULTI_COMMAND
            if value.get("mode") == "multi_command"
            else WiringMode.STANDALONE
        )
        commands = None
        table = value.get("commands")
        if isinstance(table, dict):
            commands = {str(host): str(nested) for host, nested in table.items()}
        entries[binary] = WiringEntry(binary=binary, mode=mode, commands=commands)
    return entries


def load_document_wiring(tool: ToolDefinition, workspace_root: Path) -> dict:
    file_name = wiring_file_name(tool)
    if file_name is None:
        return {}
    document = load_master_document(Path(workspace_root) / file_name)
    return parse_nested_tools(document.get("nested_tools"))


def query_self_description(binary: str, working_directory: Path) -> ToolDefinition:
    """Run `binary --dump-definitions` and parse its output."""
    try:
        result = run_binary(binary, [DUMP_FLAG], working_directory)
    except OSError as exc:
        raise WiringQueryError(binary, str(exc)) from exc
    if result.returncode != 0:
        raise WiringQueryError(binary, f"exit code {result.returncode}")
    output = (result.stdout or "").strip()
    if not output:
        raise WiringQueryError(binary, "empty output")
    try:
        return deserialize(output)
    except SelfDescriptionError as exc:
        raise WiringQueryError(binary, str(exc)) from exc


class WiringResolver:
    """Merges wiring sources and builds commands/executors for a host tool."""

    def __init__(self, tool: ToolDefinition):
        self.tool = tool

    def merge(self, workspace_root: Path) -> tuple:
        """
        Return (effective, by_command): wiring entries keyed by binary, and
        host command name -> owning entry.
        """
        effective = {entry.binary: entry for entry in self.tool.default_includes}
        effective.update(load_document_wiring(self.tool, workspace_root))

        by_command = {}
        for entry in effective.values():
            for name in entry.host_command_names:
                by_command[name] = entry
        return effective, by_command

    def _expand_requested(self, requested, by_command) -> set:
        """Requested tokens plus wired host names they abbreviate."""
        expanded = set()
        native = self.tool.commands
        for token in requested:
            expanded.add(token)
            if token in by_command or any(cmd.matches(token) for cmd in native):
                continue
            expanded.update(name for name in by_command if name.startswith(token))
        return expanded

    def resolve(
        self,
        requested=None,
        workspace_root: Path = Path("."),
        tolerate_missing: bool = False,
    ) -> WiringResult:
        effective, by_command = self.merge(workspace_root)
        if not effective:
            return WiringResult()

        if requested is None:
            needed = list(effective.values())
        else:
            wanted = self._expand_requested(requested, by_command)
            needed = [
                entry
                for entry in effective.values()
                if wanted & set(entry.host_command_names)
            ]
        if not needed:
            return WiringResult()

        commands = []
        executors = {}
        warnings = []
        errors = []
        unavailable = {}

        for entry in needed:
            problems = warnings if tolerate_missing else errors
            # A host name claimed by two entries belongs to the later one.
            owned = [n for n in entry.host_command_names if by_command[n] is entry]

            if not is_binary_on_path(entry.binary):
                problems.append(
                    MissingBinaryError(
                        resolve_binary(entry.binary), entry.host_command_names
                    )
                )
                if tolerate_missing:
                    reason = f"binary {entry.binary} not found"
                    for name in owned:
                        commands.append(
                            CommandDefinition(name=name, description=f"[{reason}]")
                        )
                        unavailable[name] = reason
                continue

            try:
                dump = query_self_description(entry.binary, workspace_root)
            except WiringQueryError as exc:
                problems.append(exc)
                if tolerate_missing:
                    reason = f"binary {entry.binary} could not be queried"
                    for name in owned:
                        commands.append(
                            CommandDefinition(name=name, description=f"[{reason}]")
                        )
                        unavailable[name] = reason
                continue

            self._build_from_dump(entry, dump, owned, commands, executors, errors)

        return WiringResult(
            commands=tuple(commands),
            executors=MappingProxyType(executors),
            warnings=tuple(warnings),
            errors=tuple(errors),
            unavailable=MappingProxyType(unavailable),
        )

    def _build_from_dump(self, entry, dump, owned, commands, executors, errors) -> None:
        provenance = f"(via {entry.binary})"

        if entry.mode is WiringMode.STANDALONE:
            if not owned:
                return
            host_name = owned[0]
            commands.append(
                CommandDefinition(
                    name=host_name,
                    description=f"{dump.description} {provenance}".strip(),
                    required_natures=dump.required_natures,
                    works_with_natures=dump.works_with_natures,
                )
            )
            executors[host_name] = DelegatingExecutor(
                binary=entry.binary,
                host_command_name=host_name,
                standalone=True,
            )
            return

        for host_name, nested_name in (entry.commands or {}).items():
            if host_name not in owned:
                continue
            nested = next((c for c in dump.commands if c.name == nested_name), None)
            if nested is None:
                errors.append(
                    UnmappedNestedCommandError(entry.binary, host_name, nested_name)
                )
                continue
            commands.append(
                CommandDefinition(
                    name=host_name,
                    description=f"{nested.description} {provenance}".strip(),
                    options=nested.options,
                    required_natures=nested.required_natures,
                    works_with_natures=nested.works_with_natures,
                    requires_traversal=nested.requires_traversal,
                    supports_git_traversal=nested.supports_git_traversal,
                )
            )
            executors[host_name] = DelegatingExecutor(
                binary=entry.binary,
                host_command_name=host_name,
                nested_command=nested_name,
            )
