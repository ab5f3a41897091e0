"""
Error taxonomy for nestkit.

Wiring problems (missing binaries, failed self-description queries, unmapped
nested commands) are collected by the wiring resolver as WiringError values
rather than raised, so a host can report every problem at once. Everything
else is raised and caught by ToolRunner.run, which prints it and turns it
into a failed ToolResult.
"""


class NestkitError(Exception):
    """Base class for every error the framework reports to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class WiringError(NestkitError):
    """A problem found while resolving nested tool wiring."""


class MissingBinaryError(WiringError):
    def __init__(self, binary: str, host_commands):
        self.binary = binary
        self.host_commands = list(host_commands)
        commands = ", ".join(f":{name}" for name in self.host_commands)
        super().__init__(f"{commands} -- binary {binary} not found")


class WiringQueryError(WiringError):
    def __init__(self, binary: str, reason: str = ""):
        self.binary = binary
        self.reason = reason
        message = f"Failed to query {binary} --dump-definitions"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnmappedNestedCommandError(WiringError):
    def __init__(self, binary: str, host_command: str, nested_command: str):
        self.binary = binary
        self.host_command = host_command
        self.nested_command = nested_command
        super().__init__(
            f":{host_command} -- {binary} has no command :{nested_command}"
        )


class SelfDescriptionError(NestkitError):
    """Self-description text could not be parsed."""


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


class UsageError(NestkitError):
    """The command line could not be parsed."""


class CommandResolutionError(NestkitError):
    pass


class AmbiguousCommandError(CommandResolutionError):
    def __init__(self, token: str, matches):
        self.token = token
        self.matches = list(matches)
        listing = "\n".join(f"  :{name}" for name in self.matches)
        super().__init__(f'Ambiguous command prefix ":{token}" matches:\n{listing}')


class UnknownCommandError(CommandResolutionError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Unknown command: :{token}")


class NoCommandSpecifiedError(NestkitError):
    def __init__(self, message: str = "No command specified"):
        super().__init__(message)


class NoExecutorError(NestkitError):
    def __init__(self, command: str):
        self.command = command
        super().__init__(f"No executor for command: {command}")


class MissingCategoryConfigurationError(NestkitError):
    def __init__(self, command=None):
        self.command = command
        label = f' "{command}"' if command else ""
        super().__init__(
            f"Command{label} has no nature configuration. "
            "Set required_natures or works_with_natures "
            "(use 'folder' for all folders)."
        )


class GitTraversalUnsupportedError(NestkitError):
    def __init__(self, command=None):
        self.command = command
        label = f" :{command}" if command else ""
        super().__init__(
            f"Command{label} does not support git traversal. "
            "Remove -i/--inner-first-git or -o/--outer-first-git."
        )


class NestedProcessError(NestkitError):
    def __init__(self, binary: str, exit_code: int):
        self.binary = binary
        self.exit_code = exit_code
        super().__init__(f"{binary} exited with code {exit_code}")
