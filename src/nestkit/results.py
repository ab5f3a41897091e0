"""Per-item and per-invocation results."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ItemResult:
    """Outcome of running one command against one traversed folder."""

    path: str
    name: str
    success: bool = True
    message: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, path, name, message=None) -> "ItemResult":
        return cls(path=str(path), name=name, success=True, message=message)

    @classmethod
    def failure(cls, path, name, error: str) -> "ItemResult":
        return cls(path=str(path), name=name, success=False, error=error)


@dataclass(frozen=True)
class ToolResult:
    success: bool = True
    processed_count: int = 0
    failed_count: int = 0
    error_message: Optional[str] = None
    item_results: tuple = field(default_factory=tuple)

    @classmethod
    def ok(cls, item_results=()) -> "ToolResult":
        return cls(
            success=True,
            processed_count=len(item_results),
            item_results=tuple(item_results),
        )

    @classmethod
    def failure(cls, error_message: str) -> "ToolResult":
        return cls(success=False, error_message=error_message)

    @classmethod
    def from_items(cls, items) -> "ToolResult":
        items = tuple(items)
        failed = sum(1 for item in items if not item.success)
        return cls(
            success=failed == 0,
            processed_count=len(items),
            failed_count=failed,
            item_results=items,
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1
