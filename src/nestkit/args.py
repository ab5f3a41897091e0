"""
Command-line parsing for nestkit tools.

An invocation looks like

    tool [global options] [words] :command [command options] :other ...

The global segment is parsed up front. Command segments are kept as raw
tokens until the dispatcher knows which definition (native or wired) a
`:token` refers to; `parse_command_options` then parses them against it.
Both stages use argparse, but usage errors raise UsageError instead of
exiting the process.
"""

import argparse
import dataclasses
from dataclasses import dataclass, field
from typing import Optional

from nestkit.definitions import CommandDefinition, OptionType, ToolDefinition
from nestkit.errors import UsageError
from nestkit.traversal import INNER_FIRST, OUTER_FIRST

COMMAND_PREFIX = ":"
NESTED_FLAG = "--nested"
DUMP_FLAG = "--dump-definitions"
VERBOSE_FLAG = "--verbose"
DRY_RUN_FLAG = "--dry-run"
HELP_FLAG = "--help"

_BUILTIN_NAMES = {
    "help",
    "version",
    "verbose",
    "dry-run",
    "nested",
    "dump-definitions",
    "scan",
    "recursive",
    "not-recursive",
    "root",
    "inner-first-git",
    "outer-first-git",
}
_BUILTIN_ABBRS = {"h", "v", "n", "s", "r", "R", "i", "o"}


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(f"{self.prog}: {message}")


@dataclass(frozen=True)
class CommandSegment:
    token: str
    tokens: tuple = ()


@dataclass(frozen=True)
class CommandArgs:
    """Options parsed for one command; only options actually supplied."""

    command: str
    options: dict = field(default_factory=dict)
    defaults: dict = field(default_factory=dict)
    project_patterns: tuple = ()
    exclude_patterns: tuple = ()

    def value(self, name: str, default=None):
        if name in self.options:
            return self.options[name]
        return self.defaults.get(name, default)


@dataclass(frozen=True)
class CliArgs:
    help: bool = False
    version: bool = False
    verbose: bool = False
    dry_run: bool = False
    nested: bool = False
    dump_definitions: bool = False
    scan: Optional[str] = None
    recursive: Optional[bool] = None
    root: Optional[str] = None
    git_mode: Optional[str] = None
    positional: tuple = ()
    global_values: dict = field(default_factory=dict)
    segments: tuple = ()
    command_args: dict = field(default_factory=dict)

    @property
    def commands(self) -> list:
        """Command tokens in the order given, as typed (possibly abbreviated)."""
        return [segment.token for segment in self.segments]

    @property
    def is_help_mode(self) -> bool:
        return self.help or "help" in self.positional

    @property
    def is_version_mode(self) -> bool:
        return self.version or "version" in self.positional

    @property
    def git_mode_explicitly_set(self) -> bool:
        return self.git_mode is not None

    def with_command_args(self, command_args: dict) -> "CliArgs":
        return dataclasses.replace(self, command_args=dict(command_args))


def _option_strings(option) -> list:
    strings = [f"--{option.name}"]
    if option.abbr:
        strings.insert(0, f"-{option.abbr}")
    return strings


def _add_option(parser, option, suppress_defaults: bool) -> None:
    kwargs = {
        "dest": option.name,
        "help": argparse.SUPPRESS if option.hidden else option.description,
    }
    if not suppress_defaults and option.default is not None:
        kwargs["default"] = option.default
    if option.type is OptionType.FLAG:
        if option.negatable:
            kwargs["action"] = argparse.BooleanOptionalAction
        else:
            kwargs["action"] = "store_true"
        parser.add_argument(*_option_strings(option), **kwargs)
        return

    if option.type is OptionType.MULTI:
        kwargs["action"] = "append"
    if option.allowed_values:
        kwargs["choices"] = list(option.allowed_values)
    if option.value_name:
        kwargs["metavar"] = option.value_name
    kwargs["required"] = option.mandatory
    parser.add_argument(*_option_strings(option), **kwargs)


def build_global_parser(tool: ToolDefinition) -> argparse.ArgumentParser:
    parser = _Parser(prog=tool.name, add_help=False, allow_abbrev=False)
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-n", "--dry-run", dest="dry_run", action="store_true")
    parser.add_argument("--nested", action="store_true")
    parser.add_argument(
        "--dump-definitions", dest="dump_definitions", action="store_true"
    )
    parser.add_argument("-s", "--scan", metavar="PATH")
    parser.add_argument("-R", "--root", metavar="PATH")
    recursion = parser.add_mutually_exclusive_group()
    recursion.add_argument("-r", "--recursive", action="store_true", default=None)
    recursion.add_argument(
        "--not-recursive", dest="recursive", action="store_false", default=None
    )
    git = parser.add_mutually_exclusive_group()
    git.add_argument(
        "-i", "--inner-first-git", dest="git_mode", action="store_const", const=INNER_FIRST
    )
    git.add_argument(
        "-o", "--outer-first-git", dest="git_mode", action="store_const", const=OUTER_FIRST
    )
    for option in tool.global_options:
        if option.name in _BUILTIN_NAMES:
            continue
        if option.abbr in _BUILTIN_ABBRS:
            option = dataclasses.replace(option, abbr=None)
        _add_option(parser, option, suppress_defaults=False)
    parser.add_argument("positional", nargs="*")
    return parser


def split_segments(argv) -> tuple:
    """Split argv into the global tokens and one CommandSegment per `:token`."""
    global_tokens = []
    segments = []
    for token in argv:
        if token.startswith(COMMAND_PREFIX) and len(token) > 1:
            segments.append(CommandSegment(token[1:]))
        elif segments:
            last = segments[-1]
            segments[-1] = CommandSegment(last.token, last.tokens + (token,))
        else:
            global_tokens.append(token)
    return global_tokens, segments


def parse_args(tool: ToolDefinition, argv) -> CliArgs:
    global_tokens, segments = split_segments(list(argv))
    namespace = build_global_parser(tool).parse_args(global_tokens)
    values = vars(namespace)

    help_requested = values.pop("help")
    for segment in segments:
        if HELP_FLAG in segment.tokens:
            help_requested = True

    builtin = {
        "version",
        "verbose",
        "dry_run",
        "nested",
        "dump_definitions",
        "scan",
        "recursive",
        "root",
        "git_mode",
        "positional",
    }
    return CliArgs(
        help=help_requested,
        version=values["version"],
        verbose=values["verbose"],
        dry_run=values["dry_run"],
        nested=values["nested"],
        dump_definitions=values["dump_definitions"],
        scan=values["scan"],
        recursive=values["recursive"],
        root=values["root"],
        git_mode=values["git_mode"],
        positional=tuple(values["positional"]),
        global_values={k: v for k, v in values.items() if k not in builtin},
        segments=tuple(segments),
    )


def build_command_parser(tool_name: str, command: CommandDefinition):
    parser = _Parser(
        prog=f"{tool_name} :{command.name}",
        add_help=False,
        allow_abbrev=False,
        argument_default=argparse.SUPPRESS,
        conflict_handler="resolve",
    )
    parser.add_argument("--help", action="store_true")
    parser.add_argument("-p", "--project", action="append", metavar="PATTERN")
    parser.add_argument("-x", "--exclude", action="append", metavar="PATTERN")
    for option in command.options:
        _add_option(parser, option, suppress_defaults=True)
    return parser


def parse_command_options(
    tool_name: str, command: CommandDefinition, tokens
) -> CommandArgs:
    namespace = build_command_parser(tool_name, command).parse_args(list(tokens))
    options = dict(vars(namespace))
    owned = {option.name for option in command.options}

    project_patterns = ()
    exclude_patterns = ()
    if "project" not in owned:
        project_patterns = tuple(options.pop("project", ()))
    if "exclude" not in owned:
        exclude_patterns = tuple(options.pop("exclude", ()))
    if "help" not in owned:
        options.pop("help", None)

    return CommandArgs(
        command=command.name,
        options=options,
        defaults={o.name: o.default for o in command.options if o.default is not None},
        project_patterns=project_patterns,
        exclude_patterns=exclude_patterns,
    )
