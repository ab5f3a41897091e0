"""
Platform-aware binary resolution.

Binary names are stored without a platform suffix everywhere (code-level
wiring, wiring documents, executors). The ".exe" suffix is added here, at the
moment a binary is checked for or launched.
"""

import shutil
import subprocess
import sys
from pathlib import Path


def resolve_binary(binary: str) -> str:
    """Return the platform-specific executable name for `binary`."""
    if sys.platform == "win32" and not binary.lower().endswith(".exe"):
        return f"{binary}.exe"
    return binary


def is_binary_on_path(binary: str) -> bool:
    """True if the platform-resolved `binary` is found on PATH."""
    return shutil.which(resolve_binary(binary)) is not None


def run_binary(binary: str, args: list, working_directory: Path):
    """
    Run `binary` with `args` in `working_directory` and wait for it.

    Output is captured in full and decoded as text. Raises OSError if the
    binary cannot be launched.
    """
    return subprocess.run(
        [resolve_binary(binary), *args],
        cwd=str(working_directory),
        capture_output=True,
        text=True,
        errors="replace",
    )
