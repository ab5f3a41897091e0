"""
Pytest configuration and shared fixtures.

Marks:
    integration -- spawns real nested tool processes through a POSIX `sh`
                   wrapper script placed on PATH

Integration tests are skipped automatically where `sh` is unavailable, so
the unit test suite always runs cleanly.
"""

import shutil
import sys
from types import SimpleNamespace

import pytest

from nestkit.definitions import (
    CommandDefinition,
    OptionDefinition,
    ToolDefinition,
    ToolMode,
)
from nestkit.executors import CommandExecutor
from nestkit.results import ItemResult, ToolResult

# ---------------------------------------------------------------------------
# Dependency detection
# ---------------------------------------------------------------------------

_HAVE_SH = shutil.which("sh") is not None and sys.platform != "win32"


# ---------------------------------------------------------------------------
# Auto-skip via markers
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(config, items):
    for item in items:
        if item.get_closest_marker("integration") and not _HAVE_SH:
            item.add_marker(pytest.mark.skip(reason="integration deps missing: sh"))


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


class TrackingExecutor(CommandExecutor):
    """Native executor that records every call."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.calls = []
        self.args = []

    def execute(self, context, args):
        self.calls.append(f"execute:{context.name}")
        self.args.append(args)
        if self.succeed:
            return ItemResult.ok(context.path, context.name)
        return ItemResult.failure(context.path, context.name, "Test failure")

    def execute_without_traversal(self, args):
        self.calls.append("no-traversal")
        self.args.append(args)
        if self.succeed:
            return ToolResult.ok()
        return ToolResult.failure("Test failure")


def completed(returncode=0, stdout="", stderr=""):
    """Stand-in for subprocess.CompletedProcess."""
    return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)


TESTKIT_DUMP = """\
name = "testkit"
version = "2.1.0"
description = "Test result tracker"
mode = "multi_command"
global_options = []

[features]
project_traversal = true
git_traversal = false
recursive_scan = true
interactive_mode = false
dry_run = false
json_output = false
verbose = true

[commands.test]
description = "Run tests and record results"
options = [
  { name = "test-args", type = "option", description = "Arguments for the test runner" },
  { name = "fail-fast", type = "flag", description = "Stop at the first failure" },
]
works_with_natures = ["dart"]

[commands.baseline]
description = "Create a baseline"
works_with_natures = ["dart"]
"""


@pytest.fixture()
def testkit_dump():
    return TESTKIT_DUMP


@pytest.fixture()
def base_tool():
    return ToolDefinition(
        name="hosttool",
        description="Host tool for tests",
        version="3.0.0",
        mode=ToolMode.MULTI_COMMAND,
        global_options=[OptionDefinition.flag("tui", "TUI mode")],
        commands=[
            CommandDefinition(
                name="native", description="A native command", requires_traversal=False
            ),
            CommandDefinition(
                name="compile", description="Compile command", requires_traversal=False
            ),
        ],
    )


@pytest.fixture()
def wired_tool(tmp_path):
    """buildkit-like host wired to testkit through its master document."""
    (tmp_path / "buildkit_master.toml").write_text(
        "[nested_tools.testkit]\n"
        'binary = "testkit"\n'
        'mode = "multi_command"\n'
        'commands = { buildkittest = "test" }\n',
        encoding="utf-8",
    )
    return ToolDefinition(
        name="buildkit",
        description="Build toolkit",
        wiring_file="",
        commands=[
            CommandDefinition(
                name="cleanup", description="Clean up", requires_traversal=False
            ),
            CommandDefinition(
                name="compile", description="Compile", requires_traversal=False
            ),
        ],
    )
