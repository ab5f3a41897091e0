"""`nestkit :wiring` -- print the merged wiring table for a host tool."""

from pathlib import Path

from nestkit.binaries import is_binary_on_path
from nestkit.config import find_workspace_root, wiring_file_name
from nestkit.definitions import ToolDefinition
from nestkit.results import ToolResult
from nestkit.wiring import WiringMode, WiringResolver


def format_wiring(effective: dict, available) -> str:
    if not effective:
        return "No nested tools wired."
    lines = []
    for entry in effective.values():
        status = "" if available(entry.binary) else "  [not on PATH]"
        lines.append(f"{entry.binary} ({entry.mode.value}){status}")
        if entry.mode is WiringMode.STANDALONE:
            lines.append(f"  :{entry.binary}")
            continue
        for host, nested in (entry.commands or {}).items():
            lines.append(f"  :{host} -> :{nested}")
    return "\n".join(lines)


def show_wiring(tool_name: str, start: Path = None) -> ToolResult:
    host = ToolDefinition(name=tool_name, wiring_file="")
    root = find_workspace_root(start or Path.cwd(), wiring_file_name(host))
    effective, _ = WiringResolver(host).merge(root)
    print(f"Workspace: {root}")
    print(format_wiring(effective, is_binary_on_path))
    return ToolResult.ok()
