"""
Minimal folder traversal.

Yields one CommandContext per folder under an execution root. Each folder is
tagged with natures (category tags) detected from marker files; commands
select folders through their required / works-with natures.
"""

import fnmatch
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

INNER_FIRST = "inner_first"
OUTER_FIRST = "outer_first"

FOLDER = "folder"

_MARKERS = {
    ".git": "git",
    "pyproject.toml": "python",
    "setup.py": "python",
    "pubspec.yaml": "dart",
    "package.json": "node",
}


@dataclass(frozen=True)
class CommandContext:
    path: Path
    name: str
    natures: frozenset = frozenset({FOLDER})

    @classmethod
    def for_directory(cls, path: Path) -> "CommandContext":
        path = Path(path)
        return cls(path=path, name=path.name, natures=detect_natures(path))


def detect_natures(path: Path) -> frozenset:
    natures = {FOLDER}
    for marker, nature in _MARKERS.items():
        if (path / marker).exists():
            natures.add(nature)
    return frozenset(natures)


def matches_natures(natures, required, works_with) -> bool:
    if not set(required) <= set(natures):
        return False
    if works_with and not set(works_with) & set(natures):
        return False
    return True


def matches_patterns(context: CommandContext, patterns, root: Path) -> bool:
    """Glob-match a folder by name or by its path relative to `root`."""
    try:
        relative = context.path.relative_to(root).as_posix()
    except ValueError:
        relative = context.path.as_posix()
    return any(
        fnmatch.fnmatch(context.name, pattern) or fnmatch.fnmatch(relative, pattern)
        for pattern in patterns
    )


class FolderTraversal:
    """
    Walk folders below `root`.

    Non-recursive visits only `root`. Hidden folders are skipped. With a git
    mode only git roots are yielded, deepest first for inner_first and
    shallowest first for outer_first.
    """

    def __init__(
        self,
        root: Path,
        recursive: bool = False,
        git_mode: Optional[str] = None,
        exclude=(),
    ):
        self.root = Path(root)
        self.recursive = recursive
        self.git_mode = git_mode
        self.exclude = tuple(exclude)

    def _folders(self) -> Iterator[Path]:
        yield self.root
        if not self.recursive:
            return
        for current, dirs, _files in os.walk(self.root):
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            for d in dirs:
                yield Path(current) / d

    def __iter__(self) -> Iterator[CommandContext]:
        contexts = [CommandContext.for_directory(path) for path in self._folders()]
        if self.exclude:
            contexts = [
                c for c in contexts if not matches_patterns(c, self.exclude, self.root)
            ]
        if self.git_mode is None:
            return iter(contexts)
        contexts = [c for c in contexts if "git" in c.natures]
        contexts.sort(
            key=lambda c: len(c.path.parts), reverse=self.git_mode == INNER_FIRST
        )
        return iter(contexts)
