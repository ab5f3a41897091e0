"""Workspace configuration: the <tool>_master.toml document."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import tomli

MASTER_SUFFIX = "_master.toml"


def wiring_file_name(tool) -> Optional[str]:
    """Name of the tool's wiring document, or None when it has none."""
    if tool.wiring_file is None:
        return None
    if tool.wiring_file == "":
        return f"{tool.name}{MASTER_SUFFIX}"
    return tool.wiring_file


def load_master_document(path: Path) -> dict:
    """
    Read a master TOML document.

    A missing file, an unreadable file or invalid TOML all yield {}: the
    document is optional configuration layered over code defaults.
    """
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            return tomli.load(f)
    except (OSError, tomli.TOMLDecodeError):
        return {}


def find_workspace_root(start: Path, file_name: Optional[str]) -> Path:
    """Nearest directory at or above `start` holding `file_name`, else `start`."""
    start = Path(start).resolve()
    if file_name:
        for directory in (start, *start.parents):
            if (directory / file_name).is_file():
                return directory
    return start


@dataclass(frozen=True)
class TraversalDefaults:
    """Defaults from the [navigation] table of the master document."""

    recursive: Optional[bool] = None
    exclude: tuple = ()

    @classmethod
    def from_mapping(cls, navigation) -> "TraversalDefaults":
        if not isinstance(navigation, dict):
            return cls()
        recursive = navigation.get("recursive")
        exclude = navigation.get("exclude")
        return cls(
            recursive=recursive if isinstance(recursive, bool) else None,
            exclude=tuple(str(p) for p in exclude) if isinstance(exclude, list) else (),
        )


def load_traversal_defaults(workspace_root: Path, tool) -> TraversalDefaults:
    file_name = wiring_file_name(tool) or f"{tool.name}{MASTER_SUFFIX}"
    document = load_master_document(workspace_root / file_name)
    return TraversalDefaults.from_mapping(document.get("navigation"))
