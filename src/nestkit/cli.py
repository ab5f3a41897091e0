"""
Entry points.

`run_tool` is what a tool binary built on nestkit calls from its main():

    def main():
        return run_tool(MY_TOOL, MY_EXECUTORS)

`main` is the nestkit console script itself: a host tool with developer
commands that also absorbs nested tools listed in nestkit_master.toml.
"""

import sys

from nestkit import __version__
from nestkit.definitions import NavigationFeatures, ToolDefinition, ToolMode
from nestkit.runner import ToolRunner


def run_tool(tool: ToolDefinition, executors, argv=None) -> int:
    """Run `tool` with `argv` (default: sys.argv[1:]) and return an exit code."""
    runner = ToolRunner(tool=tool, executors=executors)
    result = runner.run(sys.argv[1:] if argv is None else argv)
    return result.exit_code


def build_tool(executors: dict) -> ToolDefinition:
    from nestkit.devtools import register_commands

    commands = register_commands(executors)
    return ToolDefinition(
        name="nestkit",
        description="Inspect and host nested command-line tools.",
        version=__version__,
        mode=ToolMode.MULTI_COMMAND,
        features=NavigationFeatures.PROJECT_TOOL,
        commands=commands,
        wiring_file="",
        help_footer="Nested tools are wired through nestkit_master.toml.",
    )


def main(argv=None):
    executors = {}
    tool = build_tool(executors)
    return run_tool(tool, executors, argv)


if __name__ == "__main__":
    sys.exit(main())
