"""Exception types raised before any side effect happens."""

from __future__ import annotations


class MyceliumError(Exception):
    """Base class for user-facing failures."""


class ValidationError(MyceliumError):
    pass


class ItemNotFoundError(MyceliumError):
    pass


class AmbiguousItemError(MyceliumError):
    def __init__(self, name: str, types: list[str]) -> None:
        self.name = name
        self.types = types
        super().__init__(
            f"'{name}' found in multiple sections: {', '.join(types)}. "
            "Use --type to disambiguate."
        )


class UnsupportedToolError(MyceliumError):
    def __init__(self, tool_id: str) -> None:
        self.tool_id = tool_id
        super().__init__(f"Unsupported tool: {tool_id}")


class ManifestError(MyceliumError):
    pass
