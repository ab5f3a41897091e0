"""
Self-describing tool model: tools, commands and options.

Every value here is immutable. A tool is derived from another one by
chaining command-list operations and then `copy_with`:

    super_tool = base.copy_with(
        name="supertool",
        commands=base.commands
        .without({"publish"})
        .replacing("compile", fast_compile)
        .plus([deploy]),
    )
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from nestkit.errors import AmbiguousCommandError, UnknownCommandError


class ToolMode(Enum):
    MULTI_COMMAND = "multi_command"
    SINGLE_COMMAND = "single_command"
    HYBRID = "hybrid"


class OptionType(Enum):
    FLAG = "flag"
    OPTION = "option"
    MULTI = "multi"


@dataclass(frozen=True)
class NavigationFeatures:
    """Which traversal kinds and behavioral globals a tool supports."""

    project_traversal: bool = True
    git_traversal: bool = False
    recursive_scan: bool = True
    interactive_mode: bool = False
    dry_run: bool = False
    json_output: bool = False
    verbose: bool = True

    def __str__(self) -> str:
        enabled = [f.name for f in dataclasses.fields(self) if getattr(self, f.name)]
        return f"NavigationFeatures({', '.join(enabled)})"


NavigationFeatures.ALL = NavigationFeatures(
    project_traversal=True,
    git_traversal=True,
    recursive_scan=True,
    interactive_mode=True,
    dry_run=True,
    json_output=True,
    verbose=True,
)
NavigationFeatures.MINIMAL = NavigationFeatures(
    project_traversal=False,
    git_traversal=False,
    recursive_scan=False,
)
NavigationFeatures.PROJECT_TOOL = NavigationFeatures()
NavigationFeatures.GIT_TOOL = NavigationFeatures(
    project_traversal=False,
    git_traversal=True,
)


@dataclass(frozen=True)
class OptionDefinition:
    name: str
    description: str = ""
    type: OptionType = OptionType.FLAG
    abbr: Optional[str] = None
    default: Any = None
    value_name: Optional[str] = None
    mandatory: bool = False
    negatable: bool = False
    hidden: bool = False
    allowed_values: Optional[tuple] = None

    def __post_init__(self):
        if self.allowed_values is not None:
            object.__setattr__(self, "allowed_values", tuple(self.allowed_values))

    @classmethod
    def flag(cls, name: str, description: str = "", **kwargs) -> "OptionDefinition":
        return cls(name=name, description=description, type=OptionType.FLAG, **kwargs)

    @classmethod
    def option(cls, name: str, description: str = "", **kwargs) -> "OptionDefinition":
        return cls(
            name=name, description=description, type=OptionType.OPTION, **kwargs
        )

    @classmethod
    def multi(cls, name: str, description: str = "", **kwargs) -> "OptionDefinition":
        return cls(name=name, description=description, type=OptionType.MULTI, **kwargs)

    @property
    def takes_value(self) -> bool:
        return self.type is not OptionType.FLAG


@dataclass(frozen=True)
class CommandDefinition:
    """
    One command of a tool.

    required_natures / works_with_natures are the category tags a traversed
    folder must satisfy: all of the required ones, and at least one of the
    works-with ones when any are declared.
    """

    name: str
    description: str = ""
    aliases: tuple = ()
    options: tuple = ()
    required_natures: frozenset = frozenset()
    works_with_natures: frozenset = frozenset()
    hidden: bool = False
    requires_traversal: bool = True
    supports_git_traversal: bool = False

    def __post_init__(self):
        object.__setattr__(self, "aliases", tuple(self.aliases))
        object.__setattr__(self, "options", tuple(self.options))
        object.__setattr__(self, "required_natures", frozenset(self.required_natures))
        object.__setattr__(
            self, "works_with_natures", frozenset(self.works_with_natures)
        )

    @property
    def has_nature_configuration(self) -> bool:
        return bool(self.required_natures or self.works_with_natures)

    def find_option(self, name: str) -> Optional[OptionDefinition]:
        for option in self.options:
            if option.name == name:
                return option
        return None

    def matches(self, token: str) -> bool:
        """True if `token` is this command's name or one of its aliases."""
        return token == self.name or token in self.aliases


def _check_unique(commands) -> None:
    seen = set()
    for cmd in commands:
        if cmd.name in seen:
            raise ValueError(f"Duplicate command name: {cmd.name}")
        seen.add(cmd.name)


class CommandList(tuple):
    """An immutable, ordered list of commands with composition helpers."""

    def __new__(cls, commands: Iterable[CommandDefinition] = ()):
        return super().__new__(cls, commands)

    def without(self, names) -> "CommandList":
        """Drop every command whose name is in `names`."""
        names = set(names)
        return CommandList(cmd for cmd in self if cmd.name not in names)

    def replacing(self, name: str, command: CommandDefinition) -> "CommandList":
        """Replace the first command named `name`, keeping its position."""
        commands = list(self)
        for index, cmd in enumerate(commands):
            if cmd.name == name:
                commands[index] = command
                break
        return CommandList(commands)

    def plus(self, commands: Iterable[CommandDefinition]) -> "CommandList":
        """Append `commands`. Raises ValueError if a name is already present."""
        commands = tuple(commands)
        _check_unique((*self, *commands))
        return CommandList((*self, *commands))

    def names(self) -> list:
        return [cmd.name for cmd in self]

    def find(self, token: str) -> Optional[CommandDefinition]:
        """Exact name, then alias, then unambiguous prefix."""
        for cmd in self:
            if cmd.name == token:
                return cmd
        for cmd in self:
            if token in cmd.aliases:
                return cmd
        matches = self.find_with_prefix(token)
        if len(matches) == 1:
            return matches[0]
        return None

    def find_with_prefix(self, prefix: str) -> list:
        return [cmd for cmd in self if cmd.name.startswith(prefix)]

    def __add__(self, other):
        return self.plus(other)

    def __repr__(self) -> str:
        return f"CommandList({list(self)!r})"


@dataclass(frozen=True)
class ToolDefinition:
    """
    Immutable description of a tool.

    wiring_file selects the workspace wiring document:
    None disables document wiring, "" uses "<name>_master.toml",
    anything else is used as the exact file name.
    """

    name: str
    description: str = ""
    version: str = "1.0.0"
    mode: ToolMode = ToolMode.MULTI_COMMAND
    features: NavigationFeatures = field(default_factory=NavigationFeatures)
    required_natures: frozenset = frozenset()
    works_with_natures: frozenset = frozenset()
    global_options: tuple = ()
    commands: CommandList = field(default_factory=CommandList)
    default_command: Optional[str] = None
    help_footer: Optional[str] = None
    wiring_file: Optional[str] = None
    default_includes: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "commands", CommandList(self.commands))
        _check_unique(self.commands)
        object.__setattr__(self, "global_options", tuple(self.global_options))
        object.__setattr__(self, "default_includes", tuple(self.default_includes))
        object.__setattr__(self, "required_natures", frozenset(self.required_natures))
        object.__setattr__(
            self, "works_with_natures", frozenset(self.works_with_natures)
        )

    def copy_with(self, **overrides) -> "ToolDefinition":
        """Return a copy with the given fields replaced; the rest carry over."""
        return dataclasses.replace(self, **overrides)

    @property
    def has_wiring(self) -> bool:
        return self.wiring_file is not None or bool(self.default_includes)

    @property
    def visible_commands(self) -> list:
        return [cmd for cmd in self.commands if not cmd.hidden]

    def find_command(self, token: str) -> Optional[CommandDefinition]:
        return self.commands.find(token)

    def find_commands_with_prefix(self, prefix: str) -> list:
        return self.commands.find_with_prefix(prefix)

    def resolve_command(self, token: str) -> CommandDefinition:
        """Like find_command, but raise when the token is ambiguous or unknown."""
        cmd = self.commands.find(token)
        if cmd is not None:
            return cmd
        matches = self.commands.find_with_prefix(token)
        if len(matches) > 1:
            raise AmbiguousCommandError(token, [m.name for m in matches])
        raise UnknownCommandError(token)
