"""
ToolRunner: the top-level dispatcher of a nestkit tool.

Evaluation order for one invocation:

    parse -> --dump-definitions -> --nested -> wiring -> help -> version
          -> command dispatch -> per-command execution (traversal)

Wiring produces a WiredTool: the effective definition plus one read-only
executor table. It is built once and passed down; nothing after wiring
mutates it.
"""

import contextlib
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Optional

from nestkit.args import CommandSegment, parse_args, parse_command_options
from nestkit.binaries import run_binary
from nestkit.config import find_workspace_root, load_traversal_defaults, wiring_file_name
from nestkit.definitions import ToolDefinition, ToolMode
from nestkit.errors import (
    GitTraversalUnsupportedError,
    MissingCategoryConfigurationError,
    NestkitError,
    NoCommandSpecifiedError,
    NoExecutorError,
)
from nestkit.executors import ExecutorKind, FunctionExecutor
from nestkit.help import generate_command_help, generate_tool_help, generate_usage_summary
from nestkit.results import ToolResult
from nestkit.serializer import serialize
from nestkit.traversal import FolderTraversal, matches_natures, matches_patterns
from nestkit.wiring import WiringResolver

DEFAULT_EXECUTOR = "default"


@dataclass(frozen=True)
class WiredTool:
    definition: ToolDefinition
    executors: MappingProxyType
    nested_names: frozenset = frozenset()
    unavailable: MappingProxyType = field(
        default_factory=lambda: MappingProxyType({})
    )


def _as_executor(value):
    if hasattr(value, "kind"):
        return value
    return FunctionExecutor(value)


class ToolRunner:
    """
    Runs a tool from its definition and native executors.

    executors maps command names (or "default" for single-command tools) to
    CommandExecutor instances or plain functions `fn(context, args)`.

    An injected `output` stream receives everything the run writes to
    stdout, including executor and nested tool output. Stderr is untouched.
    """

    def __init__(
        self,
        tool: ToolDefinition,
        executors=None,
        output=None,
        working_directory: Optional[Path] = None,
        verbose: bool = True,
        traversal_factory=FolderTraversal,
    ):
        self.tool = tool
        self.executors = MappingProxyType(
            {name: _as_executor(value) for name, value in (executors or {}).items()}
        )
        self._output = output
        self._working_directory = working_directory
        self.verbose = verbose
        self.traversal_factory = traversal_factory

    @property
    def output(self):
        return self._output if self._output is not None else sys.stdout

    @property
    def working_directory(self) -> Path:
        return Path(self._working_directory or Path.cwd())

    def _print(self, text: str = "") -> None:
        print(text, file=self.output)

    # -----------------------------------------------------------------------
    # Entry
    # -----------------------------------------------------------------------

    def run(self, argv) -> ToolResult:
        if self._output is None:
            return self._run_reporting(argv)
        # Executors print to stdout; send that to the injected stream too.
        with contextlib.redirect_stdout(self._output):
            return self._run_reporting(argv)

    def _run_reporting(self, argv) -> ToolResult:
        try:
            return self._run(list(argv))
        except NestkitError as exc:
            self._print(f"Error: {exc.message}")
            return ToolResult.failure(exc.message)

    def _run(self, argv) -> ToolResult:
        cli_args = parse_args(self.tool, argv)

        # Native definition only; wired commands belong to this tool's host.
        if cli_args.dump_definitions:
            self.output.write(serialize(self.tool))
            return ToolResult.ok()

        if cli_args.nested:
            return self._run_nested_mode(cli_args)

        wired = WiredTool(definition=self.tool, executors=self.executors)
        if self.tool.has_wiring:
            wired = self._wire(cli_args)
            if wired is None:
                return ToolResult.failure("Nested tool wiring failed")

        if cli_args.is_help_mode:
            return self._handle_help(wired, cli_args)

        if cli_args.is_version_mode:
            self._print(f"{self.tool.name} v{self.tool.version}")
            return ToolResult.ok()

        return self._dispatch(wired, cli_args)

    # -----------------------------------------------------------------------
    # Wiring
    # -----------------------------------------------------------------------

    def _workspace_root(self) -> Path:
        return find_workspace_root(self.working_directory, wiring_file_name(self.tool))

    def _wire(self, cli_args) -> Optional[WiredTool]:
        """Wire the nested tools this invocation needs; None on errors."""
        native = WiredTool(definition=self.tool, executors=self.executors)
        help_mode = cli_args.is_help_mode
        if help_mode:
            requested = None
        elif cli_args.commands:
            requested = set(cli_args.commands)
        elif self.tool.default_command:
            requested = {self.tool.default_command}
        else:
            return native

        result = WiringResolver(self.tool).resolve(
            requested=requested,
            workspace_root=self._workspace_root(),
            tolerate_missing=help_mode,
        )

        if result.has_errors:
            self._print("Error: Nested tool wiring failed:")
            for error in result.errors:
                self._print(f"  - {error}")
            if not help_mode:
                return None

        if self.verbose:
            for warning in result.warnings:
                self._print(f"Warning: {warning}")

        if not result.commands:
            return native

        wired_names = [cmd.name for cmd in result.commands]
        commands = self.tool.commands.without(wired_names).plus(result.commands)
        return WiredTool(
            definition=self.tool.copy_with(commands=commands),
            executors=MappingProxyType({**self.executors, **result.executors}),
            nested_names=frozenset(wired_names),
            unavailable=result.unavailable,
        )

    # -----------------------------------------------------------------------
    # Help
    # -----------------------------------------------------------------------

    def _handle_help(self, wired: WiredTool, cli_args) -> ToolResult:
        tool = wired.definition
        if not cli_args.commands:
            self._print(generate_tool_help(tool, wired.nested_names, wired.unavailable))
            return ToolResult.ok()

        cmd = tool.resolve_command(cli_args.commands[0])
        if cmd.name in wired.unavailable:
            message = f"Command :{cmd.name} -- {wired.unavailable[cmd.name]}."
            self._print(message)
            return ToolResult.failure(message)

        executor = wired.executors.get(cmd.name)
        if executor is not None and executor.kind is ExecutorKind.DELEGATING:
            return self._delegate_help(executor)

        self._print(generate_command_help(cmd, tool))
        return ToolResult.ok()

    def _delegate_help(self, executor) -> ToolResult:
        try:
            result = run_binary(
                executor.binary, executor.help_args(), self.working_directory
            )
        except OSError:
            message = (
                f"Command :{executor.host_command_name} -- "
                f"binary {executor.binary} not found."
            )
            self._print(message)
            return ToolResult.failure(message)

        for stream in (result.stdout, result.stderr):
            text = (stream or "").strip()
            if text:
                self._print(text)
        if result.returncode != 0:
            return ToolResult.failure(f"{executor.binary} help exited with code {result.returncode}")
        return ToolResult.ok()

    # -----------------------------------------------------------------------
    # Nested mode
    # -----------------------------------------------------------------------

    def _run_nested_mode(self, cli_args) -> ToolResult:
        """One command, no wiring, no traversal: run in the current directory."""
        tool = self.tool
        if cli_args.is_help_mode:
            cmd = tool.find_command(cli_args.commands[0]) if cli_args.commands else None
            if cmd is not None:
                self._print(generate_command_help(cmd, tool))
            else:
                self._print(generate_tool_help(tool))
            return ToolResult.ok()

        if cli_args.is_version_mode:
            self._print(f"{tool.name} v{tool.version}")
            return ToolResult.ok()

        if self._runs_default_executor(tool, cli_args):
            executor = self._default_executor(self.executors)
            return executor.execute_without_traversal(cli_args)

        if cli_args.segments:
            segment = cli_args.segments[0]
        elif tool.default_command:
            segment = CommandSegment(tool.default_command)
        else:
            raise NoCommandSpecifiedError("No command specified in nested mode")

        cmd = tool.resolve_command(segment.token)
        executor = self.executors.get(cmd.name)
        if executor is None:
            raise NoExecutorError(cmd.name)
        command_args = parse_command_options(tool.name, cmd, segment.tokens)
        return executor.execute_without_traversal(
            cli_args.with_command_args({cmd.name: command_args})
        )

    # -----------------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------------

    @staticmethod
    def _runs_default_executor(tool: ToolDefinition, cli_args) -> bool:
        if tool.mode is ToolMode.SINGLE_COMMAND:
            return True
        return tool.mode is ToolMode.HYBRID and not cli_args.commands

    @staticmethod
    def _default_executor(executors):
        executor = executors.get(DEFAULT_EXECUTOR)
        if executor is None:
            raise NoExecutorError(DEFAULT_EXECUTOR)
        return executor

    def _dispatch(self, wired: WiredTool, cli_args) -> ToolResult:
        tool = wired.definition
        if self._runs_default_executor(tool, cli_args):
            executor = self._default_executor(wired.executors)
            return self._execute(wired, executor, None, cli_args)

        segments = list(cli_args.segments)
        if not segments:
            if not tool.default_command:
                self._print("No command specified.\n")
                self._print(generate_usage_summary(tool))
                return ToolResult.failure("No command specified")
            segments = [CommandSegment(tool.default_command)]

        # Resolve everything before running anything.
        plan = []
        for segment in segments:
            cmd = tool.resolve_command(segment.token)
            executor = wired.executors.get(cmd.name)
            if executor is None:
                raise NoExecutorError(cmd.name)
            command_args = parse_command_options(tool.name, cmd, segment.tokens)
            plan.append((cmd, executor, command_args))

        items = []
        for cmd, executor, command_args in plan:
            step_args = cli_args.with_command_args({cmd.name: command_args})
            result = self._execute(wired, executor, cmd, step_args)
            items.extend(result.item_results)
            if not result.success:
                return result
        return ToolResult.from_items(items)

    def _execution_root(self, cli_args) -> Path:
        explicit = cli_args.root or cli_args.scan
        if explicit:
            return (self.working_directory / explicit).resolve()
        return self._workspace_root()

    def _execute(self, wired: WiredTool, executor, cmd, cli_args) -> ToolResult:
        tool = wired.definition
        name = cmd.name if cmd is not None else None

        supports_git = (
            cmd.supports_git_traversal if cmd is not None else tool.features.git_traversal
        )
        if cli_args.git_mode_explicitly_set and not supports_git:
            raise GitTraversalUnsupportedError(name)

        if cmd is not None and not cmd.requires_traversal:
            return executor.execute_without_traversal(cli_args)

        if cmd is not None:
            required, works_with = cmd.required_natures, cmd.works_with_natures
        else:
            required, works_with = tool.required_natures, tool.works_with_natures
        if not required and not works_with:
            raise MissingCategoryConfigurationError(name)

        root = self._execution_root(cli_args)
        defaults = load_traversal_defaults(self._workspace_root(), tool)
        recursive = cli_args.recursive
        if recursive is None:
            recursive = bool(defaults.recursive)
        traversal = self.traversal_factory(
            root,
            recursive=recursive,
            git_mode=cli_args.git_mode,
            exclude=defaults.exclude,
        )

        command_args = cli_args.command_args.get(name)
        results = []
        for context in traversal:
            if not matches_natures(context.natures, required, works_with):
                continue
            if command_args is not None:
                projects = command_args.project_patterns
                excluded = command_args.exclude_patterns
                if projects and not matches_patterns(context, projects, root):
                    continue
                if excluded and matches_patterns(context, excluded, root):
                    continue
            if self.verbose and cli_args.verbose:
                self._print(f"[{name or tool.name}] {context.path}")
            results.append(executor.execute(context, cli_args))
        return ToolResult.from_items(results)
