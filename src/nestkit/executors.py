"""
Command executors.

Every executor carries a `kind` tag. Native executors implement a command in
this process; delegating executors run it through a nested tool binary. The
dispatcher branches on the tag (help delegation, reporting), never on the
executor's class.
"""

import sys
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from nestkit.args import DRY_RUN_FLAG, NESTED_FLAG, VERBOSE_FLAG
from nestkit.binaries import resolve_binary, run_binary
from nestkit.errors import NestedProcessError
from nestkit.results import ItemResult, ToolResult
from nestkit.traversal import CommandContext


class ExecutorKind(Enum):
    NATIVE = "native"
    DELEGATING = "delegating"


class CommandExecutor:
    """Base class for native command implementations."""

    kind = ExecutorKind.NATIVE

    def execute(self, context: CommandContext, args) -> ItemResult:
        raise NotImplementedError

    def execute_without_traversal(self, args) -> ToolResult:
        """Run once in the current working directory."""
        context = CommandContext.for_directory(Path.cwd())
        return ToolResult.from_items([self.execute(context, args)])


class FunctionExecutor(CommandExecutor):
    """
    Adapt a plain function `fn(context, args)` into an executor.

    The function may return an ItemResult, or a bool (True = success), or
    None (success).
    """

    def __init__(self, fn: Callable):
        self.fn = fn

    def execute(self, context: CommandContext, args) -> ItemResult:
        outcome = self.fn(context, args)
        if isinstance(outcome, ItemResult):
            return outcome
        if outcome is None or outcome is True:
            return ItemResult.ok(context.path, context.name)
        return ItemResult.failure(
            context.path, context.name, f"{getattr(self.fn, '__name__', 'command')} failed"
        )


def build_nested_args(
    host_args,
    host_command_name: str,
    nested_command: Optional[str],
    standalone: bool,
) -> list:
    """
    Argument vector for invoking a nested tool on behalf of the host.

    Forwards --nested, the --verbose / --dry-run globals, the nested command
    token (multi-command targets) and the options parsed for the host
    command. Traversal options are never forwarded: the host traverses and
    the nested tool only handles the directory it is started in.
    """
    args = [NESTED_FLAG]
    if host_args.verbose:
        args.append(VERBOSE_FLAG)
    if host_args.dry_run:
        args.append(DRY_RUN_FLAG)
    if not standalone:
        args.append(f":{nested_command}")

    command_args = host_args.command_args.get(host_command_name)
    if command_args is None:
        return args
    for name, value in command_args.options.items():
        if value is True:
            args.append(f"--{name}")
        elif value is False or value is None:
            continue
        elif isinstance(value, (list, tuple)):
            for item in value:
                args.extend([f"--{name}", str(item)])
        elif value != "":
            args.extend([f"--{name}", str(value)])
    return args


class DelegatingExecutor(CommandExecutor):
    """Runs a wired command through its nested tool binary."""

    kind = ExecutorKind.DELEGATING

    def __init__(
        self,
        binary: str,
        host_command_name: str,
        nested_command: Optional[str] = None,
        standalone: bool = False,
    ):
        self.binary = binary
        self.host_command_name = host_command_name
        self.nested_command = nested_command
        self.standalone = standalone

    def nested_args(self, args) -> list:
        return build_nested_args(
            args,
            host_command_name=self.host_command_name,
            nested_command=self.nested_command,
            standalone=self.standalone,
        )

    def execute(self, context: CommandContext, args) -> ItemResult:
        try:
            result = run_binary(self.binary, self.nested_args(args), context.path)
        except OSError as exc:
            return ItemResult.failure(
                context.path,
                context.name,
                f"{resolve_binary(self.binary)} could not be started: {exc}",
            )

        stdout = (result.stdout or "").strip()
        stderr = (result.stderr or "").strip()
        if stdout:
            print(stdout)
        if stderr:
            print(stderr, file=sys.stderr)

        if result.returncode == 0:
            return ItemResult.ok(context.path, context.name)
        error = NestedProcessError(resolve_binary(self.binary), result.returncode)
        return ItemResult.failure(context.path, context.name, str(error))

    def help_args(self) -> list:
        args = [NESTED_FLAG, "--help"]
        if not self.standalone:
            args.append(f":{self.nested_command}")
        return args

    def __repr__(self) -> str:
        target = "standalone" if self.standalone else f":{self.nested_command}"
        return (
            f"DelegatingExecutor({self.binary}, {target} "
            f"-> host :{self.host_command_name})"
        )
