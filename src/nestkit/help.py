"""Plain-text help rendering."""

from nestkit.definitions import CommandDefinition, OptionType, ToolDefinition, ToolMode

_GLOBAL_LINES = [
    ("-h, --help", "Show help (use with :command for command help)"),
    ("--version", "Show version"),
    ("-v, --verbose", "Verbose output"),
    ("-n, --dry-run", "Show what would be done without doing it"),
    ("-s, --scan PATH", "Scan from PATH instead of the workspace root"),
    ("-R, --root PATH", "Use PATH as the execution root"),
    ("-r, --recursive", "Visit every folder below the root"),
    ("-i, --inner-first-git", "Visit git repositories, innermost first"),
    ("-o, --outer-first-git", "Visit git repositories, outermost first"),
]


def _option_label(option) -> str:
    label = f"--{option.name}"
    if option.negatable:
        label = f"--[no-]{option.name}"
    if option.abbr:
        label = f"-{option.abbr}, {label}"
    if option.type is not OptionType.FLAG:
        label += f" <{option.value_name or 'value'}>"
    return label


def _option_description(option) -> str:
    text = option.description
    if option.allowed_values:
        text += f" [{', '.join(option.allowed_values)}]"
    if option.default is not None:
        text += f" (default: {option.default})"
    if option.mandatory:
        text += " (required)"
    return text


def _columns(rows, indent: str = "  ") -> list:
    if not rows:
        return []
    width = max(len(left) for left, _ in rows)
    return [f"{indent}{left.ljust(width)}  {right}".rstrip() for left, right in rows]


def generate_usage_summary(tool: ToolDefinition) -> str:
    if tool.mode is ToolMode.SINGLE_COMMAND:
        return f"Usage: {tool.name} [options]"
    return f"Usage: {tool.name} [options] :command [command options] ..."


def generate_tool_help(tool: ToolDefinition, nested_names=(), unavailable=None) -> str:
    """
    Full help for `tool`. Commands in `nested_names` are marked as nested;
    those in `unavailable` show why they cannot run.
    """
    unavailable = unavailable or {}
    nested_names = set(nested_names)
    lines = [f"{tool.name} v{tool.version}"]
    if tool.description:
        lines.append(tool.description)
    lines.append("")
    lines.append(generate_usage_summary(tool))
    lines.append("")
    lines.append("Global options:")
    rows = list(_GLOBAL_LINES)
    rows.extend(
        (_option_label(o), _option_description(o))
        for o in tool.global_options
        if not o.hidden
    )
    lines.extend(_columns(rows))

    commands = tool.visible_commands
    if commands:
        lines.append("")
        lines.append("Commands:")
        rows = []
        for cmd in commands:
            label = f":{cmd.name}"
            if cmd.aliases:
                label += f" ({', '.join(cmd.aliases)})"
            description = cmd.description
            if cmd.name in unavailable:
                description = f"[nested, unavailable: {unavailable[cmd.name]}]"
            elif cmd.name in nested_names:
                description = f"{description} [nested]"
            rows.append((label, description))
        lines.extend(_columns(rows))
        if tool.default_command:
            lines.append("")
            lines.append(f"Default command: :{tool.default_command}")

    if tool.help_footer:
        lines.append("")
        lines.append(tool.help_footer)
    return "\n".join(lines)


def generate_command_help(cmd: CommandDefinition, tool: ToolDefinition) -> str:
    lines = [f"{tool.name} :{cmd.name}"]
    if cmd.description:
        lines.append(cmd.description)
    if cmd.aliases:
        lines.append(f"Aliases: {', '.join(cmd.aliases)}")
    lines.append("")
    lines.append(f"Usage: {tool.name} [options] :{cmd.name} [command options]")

    options = [o for o in cmd.options if not o.hidden]
    if options:
        lines.append("")
        lines.append("Options:")
        lines.extend(_columns([(_option_label(o), _option_description(o)) for o in options]))

    if cmd.requires_traversal:
        lines.append("")
        lines.append("Project filters:")
        lines.extend(
            _columns(
                [
                    ("-p, --project <pattern>", "Only folders matching the pattern"),
                    ("-x, --exclude <pattern>", "Skip folders matching the pattern"),
                ]
            )
        )
        natures = []
        if cmd.required_natures:
            natures.append(f"requires {', '.join(sorted(cmd.required_natures))}")
        if cmd.works_with_natures:
            natures.append(f"works with {', '.join(sorted(cmd.works_with_natures))}")
        if natures:
            lines.append("")
            lines.append(f"Folders: {'; '.join(natures)}")
    return "\n".join(lines)
