"""
Self-description codec: ToolDefinition <-> TOML text.

`serialize` is what a tool prints for --dump-definitions. A host reads
that output back with `deserialize` to discover the nested tool's commands.
Only natively declared commands are written; commands a tool gets through
wiring belong to its host, not to its self-description.

Layout:

    name = "testkit"
    version = "1.2.0"
    description = "Test tracker"
    mode = "multi_command"
    global_options = []

    [features]
    project_traversal = true
    ...

    [commands.test]
    description = "Run tests"
    aliases = ["t"]
    options = [{ name = "fail-fast", type = "flag", description = "..." }]
    works_with_natures = ["dart"]
"""

import re

import tomli

from nestkit.definitions import (
    CommandDefinition,
    NavigationFeatures,
    OptionDefinition,
    OptionType,
    ToolDefinition,
    ToolMode,
)
from nestkit.errors import SelfDescriptionError

_FEATURE_NAMES = (
    "project_traversal",
    "git_traversal",
    "recursive_scan",
    "interactive_mode",
    "dry_run",
    "json_output",
    "verbose",
)
_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")
_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}


# ---------------------------------------------------------------------------
# TOML helpers
# ---------------------------------------------------------------------------


def _toml_string(value) -> str:
    out = []
    for char in str(value):
        if char in _ESCAPES:
            out.append(_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            out.append(f"\\u{ord(char):04X}")
        else:
            out.append(char)
    return '"' + "".join(out) + '"'


def _toml_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else _toml_string(key)


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def _toml_array(items) -> str:
    return "[" + ", ".join(_toml_string(item) for item in items) + "]"


def _option_inline(option: OptionDefinition) -> str:
    parts = [f"name = {_toml_string(option.name)}"]
    if option.abbr is not None:
        parts.append(f"abbr = {_toml_string(option.abbr)}")
    parts.append(f"type = {_toml_string(option.type.value)}")
    parts.append(f"description = {_toml_string(option.description)}")
    if option.default is not None:
        default = option.default
        if isinstance(default, bool):
            default = _toml_bool(default)
        elif isinstance(default, (list, tuple)):
            default = ",".join(str(item) for item in default)
        parts.append(f"default = {_toml_string(default)}")
    if option.value_name is not None:
        parts.append(f"value_name = {_toml_string(option.value_name)}")
    if option.mandatory:
        parts.append("mandatory = true")
    if option.negatable:
        parts.append("negatable = true")
    if option.hidden:
        parts.append("hidden = true")
    if option.allowed_values:
        parts.append(f"allowed = {_toml_array(option.allowed_values)}")
    return "{ " + ", ".join(parts) + " }"


def _options_array(options) -> str:
    if not options:
        return "[]"
    return "[\n" + "".join(f"  {_option_inline(opt)},\n" for opt in options) + "]"


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------


def serialize(tool: ToolDefinition) -> str:
    """Render the native surface of `tool` as a self-description document."""
    lines = [
        f"name = {_toml_string(tool.name)}",
        f"version = {_toml_string(tool.version)}",
        f"description = {_toml_string(tool.description)}",
        f"mode = {_toml_string(tool.mode.value)}",
    ]
    if tool.required_natures:
        lines.append(f"required_natures = {_toml_array(sorted(tool.required_natures))}")
    if tool.works_with_natures:
        lines.append(
            f"works_with_natures = {_toml_array(sorted(tool.works_with_natures))}"
        )
    lines.append(f"global_options = {_options_array(tool.global_options)}")

    lines.append("")
    lines.append("[features]")
    for name in _FEATURE_NAMES:
        lines.append(f"{name} = {_toml_bool(getattr(tool.features, name))}")

    if not tool.commands:
        lines.append("")
        lines.append("[commands]")

    for cmd in tool.commands:
        lines.append("")
        lines.extend(_command_lines(cmd))

    return "\n".join(lines) + "\n"


def _command_lines(cmd: CommandDefinition) -> list:
    lines = [
        f"[commands.{_toml_key(cmd.name)}]",
        f"description = {_toml_string(cmd.description)}",
    ]
    if cmd.aliases:
        lines.append(f"aliases = {_toml_array(cmd.aliases)}")
    if cmd.options:
        lines.append(f"options = {_options_array(cmd.options)}")
    if cmd.required_natures:
        lines.append(f"required_natures = {_toml_array(sorted(cmd.required_natures))}")
    if cmd.works_with_natures:
        lines.append(
            f"works_with_natures = {_toml_array(sorted(cmd.works_with_natures))}"
        )
    if cmd.hidden:
        lines.append("hidden = true")
    if not cmd.requires_traversal:
        lines.append("requires_traversal = false")
    if cmd.supports_git_traversal:
        lines.append("supports_git_traversal = true")
    return lines


# ---------------------------------------------------------------------------
# Deserialize
# ---------------------------------------------------------------------------


def deserialize(text: str) -> ToolDefinition:
    """Parse a self-description document. Raises SelfDescriptionError."""
    try:
        data = tomli.loads(text)
    except tomli.TOMLDecodeError as exc:
        raise SelfDescriptionError(f"Invalid self-description: {exc}") from exc
    return from_mapping(data)


def from_mapping(data: dict) -> ToolDefinition:
    """Build a ToolDefinition from an already-loaded self-description."""
    features = data.get("features")
    if isinstance(features, dict):
        features = NavigationFeatures(
            **{name: features.get(name) is True for name in _FEATURE_NAMES}
        )
    else:
        features = NavigationFeatures()

    global_options = [
        _option_from_mapping(opt)
        for opt in _as_list(data.get("global_options"))
        if isinstance(opt, dict)
    ]

    commands = []
    commands_table = data.get("commands")
    if isinstance(commands_table, dict):
        for name, table in commands_table.items():
            if isinstance(table, dict):
                commands.append(_command_from_mapping(str(name), table))

    return ToolDefinition(
        name=_as_str(data.get("name")),
        version=_as_str(data.get("version"), "1.0.0"),
        description=_as_str(data.get("description")),
        mode=_enum_value(ToolMode, data.get("mode"), ToolMode.MULTI_COMMAND),
        features=features,
        required_natures=_string_set(data.get("required_natures")),
        works_with_natures=_string_set(data.get("works_with_natures")),
        global_options=global_options,
        commands=commands,
    )


def _command_from_mapping(name: str, table: dict) -> CommandDefinition:
    return CommandDefinition(
        name=name,
        description=_as_str(table.get("description")),
        aliases=[str(alias) for alias in _as_list(table.get("aliases"))],
        options=[
            _option_from_mapping(opt)
            for opt in _as_list(table.get("options"))
            if isinstance(opt, dict)
        ],
        required_natures=_string_set(table.get("required_natures")),
        works_with_natures=_string_set(table.get("works_with_natures")),
        hidden=table.get("hidden") is True,
        requires_traversal=table.get("requires_traversal") is not False,
        supports_git_traversal=table.get("supports_git_traversal") is True,
    )


def _option_from_mapping(table: dict) -> OptionDefinition:
    default = table.get("default")
    allowed = table.get("allowed")
    abbr = table.get("abbr")
    value_name = table.get("value_name")
    return OptionDefinition(
        name=_as_str(table.get("name")),
        abbr=str(abbr) if abbr is not None else None,
        type=_enum_value(OptionType, table.get("type"), OptionType.FLAG),
        description=_as_str(table.get("description")),
        default=str(default) if default is not None else None,
        value_name=str(value_name) if value_name is not None else None,
        mandatory=table.get("mandatory") is True,
        negatable=table.get("negatable") is True,
        hidden=table.get("hidden") is True,
        allowed_values=[str(v) for v in allowed] if isinstance(allowed, list) else None,
    )


def _as_str(value, default: str = "") -> str:
    if value is None or isinstance(value, (dict, list)):
        return default
    return str(value)


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _string_set(value) -> frozenset:
    return frozenset(str(item) for item in _as_list(value))


def _enum_value(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default
