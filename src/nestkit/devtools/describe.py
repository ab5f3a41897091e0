"""`nestkit :describe` -- show what a nested tool binary announces."""

import sys
from pathlib import Path

from nestkit.binaries import is_binary_on_path, resolve_binary, run_binary
from nestkit.args import DUMP_FLAG
from nestkit.definitions import OptionType
from nestkit.errors import WiringQueryError
from nestkit.results import ToolResult
from nestkit.wiring import query_self_description


def format_summary(tool) -> str:
    lines = [f"{tool.name} v{tool.version} ({tool.mode.value})"]
    if tool.description:
        lines.append(tool.description)
    if not tool.commands:
        lines.append("No commands.")
        return "\n".join(lines)
    lines.append("")
    lines.append("Commands:")
    for cmd in tool.commands:
        marker = " (hidden)" if cmd.hidden else ""
        lines.append(f"  :{cmd.name}{marker}  {cmd.description}".rstrip())
        for option in cmd.options:
            kind = "" if option.type is OptionType.FLAG else f" <{option.type.value}>"
            lines.append(f"      --{option.name}{kind}")
    return "\n".join(lines)


def describe_binary(binary: str, raw: bool = False) -> ToolResult:
    if not is_binary_on_path(binary):
        message = f"Binary {resolve_binary(binary)} not found on PATH."
        print(message, file=sys.stderr)
        return ToolResult.failure(message)

    if raw:
        result = run_binary(binary, [DUMP_FLAG], Path.cwd())
        print(result.stdout, end="")
        if result.returncode != 0:
            return ToolResult.failure(f"{binary} exited with code {result.returncode}")
        return ToolResult.ok()

    try:
        tool = query_self_description(binary, Path.cwd())
    except WiringQueryError as exc:
        print(str(exc), file=sys.stderr)
        return ToolResult.failure(str(exc))

    print(format_summary(tool))
    return ToolResult.ok()
