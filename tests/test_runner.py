"""Tests for ToolRunner: evaluation order, dispatch, wiring and help."""

import io
from unittest.mock import patch

import pytest

from conftest import TrackingExecutor, completed
from nestkit.definitions import (
    CommandDefinition,
    OptionDefinition,
    ToolDefinition,
    ToolMode,
)
from nestkit.runner import ToolRunner
from nestkit.serializer import deserialize


def _runner(tool, executors, tmp_path, **kwargs):
    return ToolRunner(tool, executors, working_directory=tmp_path, **kwargs)


def _traversing_tool(**command_kwargs):
    return ToolDefinition(
        name="walker",
        commands=[CommandDefinition(name="build", **command_kwargs)],
    )


# ---------------------------------------------------------------------------
# --dump-definitions
# ---------------------------------------------------------------------------


def test_dump_wins_over_help_and_commands(base_tool, tmp_path, capsys):
    native = TrackingExecutor()
    result = _runner(base_tool, {"native": native}, tmp_path).run(
        ["--dump-definitions", "--help", ":native"]
    )

    assert result.success
    out = capsys.readouterr().out
    assert "Global options" not in out
    assert deserialize(out) == base_tool
    assert native.calls == []


def test_dump_omits_wired_commands_and_queries_nothing(wired_tool, tmp_path, capsys):
    with patch("shutil.which") as which, patch("subprocess.run") as run:
        result = _runner(wired_tool, {}, tmp_path).run(["--dump-definitions"])

    assert result.success
    which.assert_not_called()
    run.assert_not_called()
    dumped = deserialize(capsys.readouterr().out)
    assert dumped.commands.names() == ["cleanup", "compile"]


# ---------------------------------------------------------------------------
# Nested mode
# ---------------------------------------------------------------------------


def test_nested_mode_runs_only_first_command(base_tool, tmp_path):
    native, compile_ = TrackingExecutor(), TrackingExecutor()
    result = _runner(base_tool, {"native": native, "compile": compile_}, tmp_path).run(
        ["--nested", ":native", ":compile"]
    )

    assert result.success
    assert native.calls == ["no-traversal"]
    assert compile_.calls == []
    assert "native" in native.args[0].command_args


def test_nested_mode_never_wires(wired_tool, tmp_path):
    cleanup = TrackingExecutor()
    with patch("shutil.which") as which, patch("subprocess.run") as run:
        result = _runner(wired_tool, {"cleanup": cleanup}, tmp_path).run(
            ["--nested", ":cleanup"]
        )

    assert result.success
    which.assert_not_called()
    run.assert_not_called()
    assert cleanup.calls == ["no-traversal"]


def test_nested_mode_traversing_command_runs_once(tmp_path):
    build = TrackingExecutor()
    tool = _traversing_tool(works_with_natures={"dart"})
    result = _runner(tool, {"build": build}, tmp_path).run(["--nested", ":build"])
    assert result.success
    assert build.calls == ["no-traversal"]


def test_nested_mode_without_command_fails(base_tool, tmp_path, capsys):
    result = _runner(base_tool, {}, tmp_path).run(["--nested"])
    assert not result.success
    assert "Error: No command specified in nested mode" in capsys.readouterr().out


def test_nested_mode_uses_default_command(base_tool, tmp_path):
    native = TrackingExecutor()
    tool = base_tool.copy_with(default_command="native")
    assert _runner(tool, {"native": native}, tmp_path).run(["--nested"]).success
    assert native.calls == ["no-traversal"]


def test_nested_mode_single_command_tool(tmp_path):
    default = TrackingExecutor()
    tool = ToolDefinition(name="astgen", mode=ToolMode.SINGLE_COMMAND)
    assert _runner(tool, {"default": default}, tmp_path).run(["--nested"]).success
    assert default.calls == ["no-traversal"]


def test_nested_mode_command_help(base_tool, tmp_path, capsys):
    result = _runner(base_tool, {}, tmp_path).run(["--nested", "--help", ":compile"])
    assert result.success
    assert "hosttool :compile" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Help and version
# ---------------------------------------------------------------------------


def test_tool_help(base_tool, tmp_path, capsys):
    assert _runner(base_tool, {}, tmp_path).run(["--help"]).success
    out = capsys.readouterr().out
    assert "hosttool v3.0.0" in out
    assert ":native" in out
    assert "--tui" in out


def test_help_word(base_tool, tmp_path, capsys):
    assert _runner(base_tool, {}, tmp_path).run(["help"]).success
    assert "Commands:" in capsys.readouterr().out


def test_command_help_inside_segment(base_tool, tmp_path, capsys):
    native = TrackingExecutor()
    result = _runner(base_tool, {"native": native}, tmp_path).run([":native", "--help"])
    assert result.success
    assert "hosttool :native" in capsys.readouterr().out
    assert native.calls == []


def test_version(base_tool, tmp_path, capsys):
    assert _runner(base_tool, {}, tmp_path).run(["--version"]).success
    assert capsys.readouterr().out.strip() == "hosttool v3.0.0"


def test_help_with_missing_binary_shows_placeholder(wired_tool, tmp_path, capsys):
    with patch("shutil.which", return_value=None):
        result = _runner(wired_tool, {}, tmp_path).run(["--help"])

    assert result.success
    out = capsys.readouterr().out
    assert ":buildkittest" in out
    assert "[nested, unavailable: binary testkit not found]" in out
    assert "Warning:" in out


def test_help_for_placeholder_command(wired_tool, tmp_path, capsys):
    with patch("shutil.which", return_value=None):
        result = _runner(wired_tool, {}, tmp_path).run([":buildkittest", "--help"])

    assert not result.success
    assert "Command :buildkittest -- binary testkit not found." in capsys.readouterr().out


def test_help_marks_nested_commands(wired_tool, tmp_path, capsys, testkit_dump):
    with patch("shutil.which", return_value="/usr/bin/testkit"), patch(
        "subprocess.run", return_value=completed(stdout=testkit_dump)
    ):
        _runner(wired_tool, {}, tmp_path).run(["--help"])

    out = capsys.readouterr().out
    assert "Run tests and record results (via testkit) [nested]" in out


def test_wired_command_help_is_delegated(wired_tool, tmp_path, capsys, testkit_dump):
    responses = [completed(stdout=testkit_dump), completed(stdout="testkit :test help")]
    with patch("shutil.which", return_value="/usr/bin/testkit"), patch(
        "subprocess.run", side_effect=responses
    ) as run:
        result = _runner(wired_tool, {}, tmp_path).run([":buildkittest", "--help"])

    assert result.success
    assert run.call_args_list[1][0][0] == ["testkit", "--nested", "--help", ":test"]
    assert "testkit :test help" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def test_commands_run_in_order(base_tool, tmp_path):
    order = []

    class Recording(TrackingExecutor):
        def __init__(self, label):
            super().__init__()
            self.label = label

        def execute_without_traversal(self, args):
            order.append(self.label)
            return super().execute_without_traversal(args)

    executors = {"native": Recording("native"), "compile": Recording("compile")}
    result = _runner(base_tool, executors, tmp_path).run([":compile", ":native"])
    assert result.success
    assert order == ["compile", "native"]


def test_stops_at_first_failure(base_tool, tmp_path):
    native, compile_ = TrackingExecutor(succeed=False), TrackingExecutor()
    result = _runner(base_tool, {"native": native, "compile": compile_}, tmp_path).run(
        [":native", ":compile"]
    )
    assert not result.success
    assert native.calls == ["no-traversal"]
    assert compile_.calls == []


def test_abbreviated_command(base_tool, tmp_path):
    native = TrackingExecutor()
    assert _runner(base_tool, {"native": native}, tmp_path).run([":nat"]).success
    assert native.calls == ["no-traversal"]


def test_ambiguous_prefix(wired_tool, tmp_path, capsys):
    cleanup, compile_ = TrackingExecutor(), TrackingExecutor()
    with patch("subprocess.run") as run:
        result = _runner(
            wired_tool, {"cleanup": cleanup, "compile": compile_}, tmp_path
        ).run([":c"])

    assert not result.success
    run.assert_not_called()
    out = capsys.readouterr().out
    assert 'Ambiguous command prefix ":c" matches:' in out
    assert ":cleanup" in out
    assert ":compile" in out
    assert cleanup.calls == compile_.calls == []


def test_unknown_command_prevents_all_runs(base_tool, tmp_path, capsys):
    native = TrackingExecutor()
    result = _runner(base_tool, {"native": native}, tmp_path).run([":native", ":zzz"])
    assert not result.success
    assert native.calls == []
    assert "Unknown command: :zzz" in capsys.readouterr().out


def test_missing_executor(base_tool, tmp_path, capsys):
    result = _runner(base_tool, {}, tmp_path).run([":native"])
    assert not result.success
    assert "No executor for command: native" in capsys.readouterr().out


def test_no_command_prints_usage(base_tool, tmp_path, capsys):
    result = _runner(base_tool, {}, tmp_path).run([])
    assert not result.success
    assert result.error_message == "No command specified"
    out = capsys.readouterr().out
    assert "No command specified." in out
    assert "Usage: hosttool" in out


def test_default_command(base_tool, tmp_path):
    native = TrackingExecutor()
    tool = base_tool.copy_with(default_command="native")
    assert _runner(tool, {"native": native}, tmp_path).run([]).success
    assert native.calls == ["no-traversal"]


def test_command_options_parsed(tmp_path):
    seen = []
    tool = ToolDefinition(
        name="hosttool",
        commands=[
            CommandDefinition(
                name="deploy",
                options=[
                    OptionDefinition.flag("force"),
                    OptionDefinition.option("target", default="staging"),
                ],
                requires_traversal=False,
            )
        ],
    )

    def deploy(context, args):
        seen.append(args.command_args["deploy"])

    assert _runner(tool, {"deploy": deploy}, tmp_path).run([":deploy", "--force"]).success
    assert seen[0].options == {"force": True}
    assert seen[0].value("target") == "staging"


def test_repeated_command_gets_its_own_options(tmp_path):
    seen = []
    tool = ToolDefinition(
        name="hosttool",
        commands=[
            CommandDefinition(
                name="emit",
                options=[OptionDefinition.option("msg")],
                requires_traversal=False,
            )
        ],
    )

    def emit(context, args):
        seen.append(args.command_args["emit"].value("msg"))

    result = _runner(tool, {"emit": emit}, tmp_path).run(
        [":emit", "--msg", "first", ":emit", "--msg", "second"]
    )
    assert result.success
    assert seen == ["first", "second"]


def test_repeated_wired_command_forwards_its_own_options(wired_tool, tmp_path, testkit_dump):
    (tmp_path / "pubspec.yaml").write_text("", encoding="utf-8")
    responses = [completed(stdout=testkit_dump), completed(), completed()]
    with patch("shutil.which", return_value="/usr/bin/testkit"), patch(
        "subprocess.run", side_effect=responses
    ) as run:
        result = _runner(wired_tool, {}, tmp_path).run(
            [":buildkittest", "--test-args", "a", ":buildkittest", "--fail-fast"]
        )

    assert result.success
    first, second = (call[0][0] for call in run.call_args_list[1:])
    assert first == ["testkit", "--nested", ":test", "--test-args", "a"]
    assert second == ["testkit", "--nested", ":test", "--fail-fast"]


def test_unknown_command_option(base_tool, tmp_path, capsys):
    result = _runner(base_tool, {"native": TrackingExecutor()}, tmp_path).run(
        [":native", "--bogus"]
    )
    assert not result.success
    assert "--bogus" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


@pytest.fixture()
def project_tree(tmp_path):
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "pyproject.toml").write_text("", encoding="utf-8")
    (tmp_path / "docs").mkdir()
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib" / "pubspec.yaml").write_text("", encoding="utf-8")
    return tmp_path


def test_missing_category_configuration(tmp_path, capsys):
    build = TrackingExecutor()
    result = _runner(_traversing_tool(), {"build": build}, tmp_path).run([":build"])
    assert not result.success
    assert build.calls == []
    assert "no nature configuration" in capsys.readouterr().out


def test_git_mode_rejected_when_unsupported(tmp_path, capsys):
    build = TrackingExecutor()
    tool = _traversing_tool(works_with_natures={"folder"})
    result = _runner(tool, {"build": build}, tmp_path).run(["-i", ":build"])
    assert not result.success
    assert build.calls == []
    assert "does not support git traversal" in capsys.readouterr().out


def test_natures_select_folders(project_tree):
    build = TrackingExecutor()
    tool = _traversing_tool(works_with_natures={"python", "dart"})
    result = _runner(tool, {"build": build}, project_tree).run(["-r", ":build"])
    assert result.success
    assert result.processed_count == 2
    assert build.calls == ["execute:app", "execute:lib"]


def test_project_and_exclude_patterns(project_tree):
    build = TrackingExecutor()
    tool = _traversing_tool(works_with_natures={"folder"})
    runner = _runner(tool, {"build": build}, project_tree)

    assert runner.run(["-r", ":build", "-p", "d*"]).success
    assert build.calls == ["execute:docs"]

    build.calls.clear()
    assert runner.run(["-r", ":build", "-x", "docs", "-x", project_tree.name]).success
    assert build.calls == ["execute:app", "execute:lib"]


def test_non_recursive_visits_root_only(project_tree):
    build = TrackingExecutor()
    tool = _traversing_tool(works_with_natures={"folder"})
    assert _runner(tool, {"build": build}, project_tree).run([":build"]).success
    assert build.calls == [f"execute:{project_tree.name}"]


def test_root_option(project_tree):
    build = TrackingExecutor()
    tool = _traversing_tool(works_with_natures={"folder"})
    assert _runner(tool, {"build": build}, project_tree).run(["-R", "lib", ":build"]).success
    assert build.calls == ["execute:lib"]


def test_master_document_navigation_defaults(project_tree):
    (project_tree / "walker_master.toml").write_text(
        '[navigation]\nrecursive = true\nexclude = ["docs"]\n', encoding="utf-8"
    )
    build = TrackingExecutor()
    tool = _traversing_tool(works_with_natures={"folder"})
    assert _runner(tool, {"build": build}, project_tree).run([":build"]).success
    assert build.calls == [f"execute:{project_tree.name}", "execute:app", "execute:lib"]


def test_verbose_prints_visited_folders(project_tree, capsys):
    tool = _traversing_tool(works_with_natures={"python"})
    assert _runner(tool, {"build": TrackingExecutor()}, project_tree).run(
        ["-v", "-r", ":build"]
    ).success
    assert f"[build] {project_tree.resolve() / 'app'}" in capsys.readouterr().out


def test_function_executor_over_traversal(project_tree):
    visited = []
    tool = _traversing_tool(works_with_natures={"dart"})

    def build(context, args):
        visited.append(context.name)

    assert _runner(tool, {"build": build}, project_tree).run(["-r", ":build"]).success
    assert visited == ["lib"]


def test_single_command_tool_traverses(project_tree):
    default = TrackingExecutor()
    tool = ToolDefinition(
        name="astgen", mode=ToolMode.SINGLE_COMMAND, works_with_natures={"python"}
    )
    assert _runner(tool, {"default": default}, project_tree).run(["-r"]).success
    assert default.calls == ["execute:app"]


def test_hybrid_tool_without_command_uses_default(project_tree):
    default, build = TrackingExecutor(), TrackingExecutor()
    tool = ToolDefinition(
        name="hybrid",
        mode=ToolMode.HYBRID,
        works_with_natures={"dart"},
        commands=[CommandDefinition(name="build", requires_traversal=False)],
    )
    runner = _runner(tool, {"default": default, "build": build}, project_tree)

    assert runner.run(["-r"]).success
    assert default.calls == ["execute:lib"]
    assert runner.run([":build"]).success
    assert build.calls == ["no-traversal"]


# ---------------------------------------------------------------------------
# Wired dispatch
# ---------------------------------------------------------------------------


def test_missing_binary_aborts_before_any_command(wired_tool, tmp_path, capsys):
    cleanup = TrackingExecutor()
    with patch("shutil.which", return_value=None):
        result = _runner(wired_tool, {"cleanup": cleanup}, tmp_path).run(
            [":cleanup", ":buildkittest"]
        )

    assert not result.success
    assert cleanup.calls == []
    out = capsys.readouterr().out
    assert "Error: Nested tool wiring failed:" in out
    assert "testkit" in out


def test_unrelated_command_does_not_need_nested_binary(wired_tool, tmp_path):
    cleanup = TrackingExecutor()
    with patch("shutil.which", return_value=None), patch("subprocess.run") as run:
        result = _runner(wired_tool, {"cleanup": cleanup}, tmp_path).run([":cleanup"])

    assert result.success
    run.assert_not_called()
    assert cleanup.calls == ["no-traversal"]


def test_wired_command_delegates_per_folder(wired_tool, tmp_path, testkit_dump):
    pkg = tmp_path / "pkg"
    pkg.mkdir()
    (pkg / "pubspec.yaml").write_text("", encoding="utf-8")
    responses = [completed(stdout=testkit_dump), completed(stdout="ok")]

    with patch("shutil.which", return_value="/usr/bin/testkit"), patch(
        "subprocess.run", side_effect=responses
    ) as run:
        result = _runner(wired_tool, {}, tmp_path).run(
            ["-r", ":buildkittest", "--test-args", "--name parser"]
        )

    assert result.success
    assert result.processed_count == 1
    query, execution = run.call_args_list
    assert query[1]["cwd"] == str(tmp_path.resolve())
    assert execution[0][0] == [
        "testkit",
        "--nested",
        ":test",
        "--test-args",
        "--name parser",
    ]
    assert execution[1]["cwd"] == str(pkg.resolve())


def test_wired_command_replaces_native(tmp_path, testkit_dump):
    (tmp_path / "buildkit_master.toml").write_text(
        '[nested_tools.testkit]\nmode = "multi_command"\ncommands = { compile = "baseline" }\n',
        encoding="utf-8",
    )
    (tmp_path / "pubspec.yaml").write_text("", encoding="utf-8")
    tool = ToolDefinition(
        name="buildkit",
        wiring_file="",
        commands=[CommandDefinition(name="compile", requires_traversal=False)],
    )
    native = TrackingExecutor()
    responses = [completed(stdout=testkit_dump), completed()]

    with patch("shutil.which", return_value="/usr/bin/testkit"), patch(
        "subprocess.run", side_effect=responses
    ) as run:
        result = _runner(tool, {"compile": native}, tmp_path).run([":compile"])

    assert result.success
    assert native.calls == []
    assert run.call_args_list[1][0][0] == ["testkit", "--nested", ":baseline"]


def test_wired_failure_propagates(wired_tool, tmp_path, testkit_dump):
    (tmp_path / "pubspec.yaml").write_text("", encoding="utf-8")
    responses = [completed(stdout=testkit_dump), completed(returncode=1)]
    with patch("shutil.which", return_value="/usr/bin/testkit"), patch(
        "subprocess.run", side_effect=responses
    ):
        result = _runner(wired_tool, {}, tmp_path).run([":buildkittest"])

    assert not result.success
    assert result.failed_count == 1
    assert result.item_results[0].error == "testkit exited with code 1"


# ---------------------------------------------------------------------------
# Output stream
# ---------------------------------------------------------------------------


def test_injected_output_receives_executor_output(base_tool, tmp_path, capsys):
    stream = io.StringIO()

    def native(context, args):
        print("native says hi")

    result = ToolRunner(
        base_tool, {"native": native}, output=stream, working_directory=tmp_path
    ).run([":native", ":zzz"])

    assert not result.success
    assert "Unknown command: :zzz" in stream.getvalue()
    assert capsys.readouterr().out == ""

    ToolRunner(
        base_tool, {"native": native}, output=stream, working_directory=tmp_path
    ).run([":native"])
    assert "native says hi" in stream.getvalue()


def test_injected_output_receives_nested_output(wired_tool, tmp_path, testkit_dump, capsys):
    (tmp_path / "pubspec.yaml").write_text("", encoding="utf-8")
    stream = io.StringIO()
    responses = [completed(stdout=testkit_dump), completed(stdout="all green", stderr="warn")]
    with patch("shutil.which", return_value="/usr/bin/testkit"), patch(
        "subprocess.run", side_effect=responses
    ):
        result = ToolRunner(
            wired_tool, {}, output=stream, working_directory=tmp_path
        ).run([":buildkittest"])

    assert result.success
    assert "all green" in stream.getvalue()
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "warn" in captured.err
