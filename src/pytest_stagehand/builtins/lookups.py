"""Dotted-path lookups into nested response data."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pytest_stagehand.values import RuntimeValue


class PathLookup:
    """Resolver for dotted-path access.

    Resolves values from nested data structures (dicts and lists)
    using a dot-separated path notation. An empty path resolves to the
    value itself.

    The resolver is intentionally tolerant: any missing key, invalid
    index, or type mismatch results in `None` instead of raising an
    exception, leaving the decision to the asserting step.
    """

    def __init__(self, path: str | None = None) -> None:
        """Initialize the resolver with a dotted path.

        Args:
            path: Dot-separated path. Each segment represents either
                a dictionary key or a list index (if numeric).
        """
        path = (path or '').strip()
        self.path = path.split('.') if path else []

    def __call__(self, value: 'RuntimeValue') -> 'RuntimeValue':
        """Resolve the path against a value."""
        return self.resolve(value)

    def resolve(self, val: 'RuntimeValue', depth: int = 1) -> 'RuntimeValue':
        """Resolve the path against a value.

        Args:
            val: Current value being resolved.
            depth: Current depth of traversal (used internally).

        Returns:
            The resolved value if the full path is valid, otherwise `None`.
        """
        if val is None or depth > len(self.path):
            return val

        key = self.path[depth - 1]
        if not key:
            return None

        next_val = None
        if key.isdecimal() and isinstance(val, (list, tuple)):
            index = int(key)
            if 0 <= index < len(val):
                next_val = val[index]
        elif isinstance(val, dict):
            next_val = val.get(key)
        else:
            return None

        return self.resolve(next_val, depth + 1)
