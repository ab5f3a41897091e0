"""Developer commands of the nestkit tool -- registers them with the host."""

from nestkit.definitions import CommandDefinition, OptionDefinition
from nestkit.executors import CommandExecutor
from nestkit.results import ToolResult

DESCRIBE = CommandDefinition(
    name="describe",
    description="Query a binary's self-description and summarize it",
    aliases=("desc",),
    options=(
        OptionDefinition.option(
            "binary",
            "Binary to query (without platform suffix)",
            abbr="b",
            value_name="name",
            mandatory=True,
        ),
        OptionDefinition.flag("raw", "Print the self-description document as-is"),
    ),
    requires_traversal=False,
)

WIRING = CommandDefinition(
    name="wiring",
    description="Show the effective nested tool wiring of the workspace",
    options=(
        OptionDefinition.option(
            "tool",
            "Host tool whose <tool>_master.toml is read",
            abbr="t",
            value_name="name",
            default="nestkit",
        ),
    ),
    requires_traversal=False,
)


class _DescribeExecutor(CommandExecutor):
    def execute_without_traversal(self, args) -> ToolResult:
        from nestkit.devtools.describe import describe_binary

        command_args = args.command_args[DESCRIBE.name]
        return describe_binary(
            command_args.value("binary"), raw=bool(command_args.value("raw"))
        )


class _WiringExecutor(CommandExecutor):
    def execute_without_traversal(self, args) -> ToolResult:
        from nestkit.devtools.wiring_table import show_wiring

        command_args = args.command_args[WIRING.name]
        return show_wiring(command_args.value("tool"))


def register_commands(executors: dict) -> list:
    """Add the developer executors to `executors`; return their commands."""
    executors[DESCRIBE.name] = _DescribeExecutor()
    executors[WIRING.name] = _WiringExecutor()
    return [DESCRIBE, WIRING]
