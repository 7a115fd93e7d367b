"""Traversal and mutation of structured values by dot-separated paths.

Example path: ``"database.password"`` refers to
``value["database"]["password"]``.
"""
from typing import Any

from .exceptions import DotPathError

MISSING = object()
_NO_DEFAULT = object()


def split_path(path: str) -> list[str]:
    """Split ``path`` into its segments.

    Raises:
        DotPathError: If the path is empty or contains an empty segment.
    """
    if not path:
        raise DotPathError("path must not be empty")
    parts = path.split(".")
    if any(not segment for segment in parts):
        raise DotPathError(
            f"invalid path '{path}': empty segment is not allowed"
        )
    return parts


def set_value(root: Any, path: str, value: Any) -> None:
    """Set the location named by ``path`` inside ``root`` to ``value``.

    Missing intermediate mappings are created; sibling keys are left alone.

    Raises:
        DotPathError: If the path is malformed or traverses a non-mapping node.
    """
    parts = split_path(path)
    current = root
    for part in parts[:-1]:
        if not isinstance(current, dict):
            raise DotPathError(
                f"expected object at segment '{part}' of path '{path}'"
            )
        current = current.setdefault(part, {})
    last = parts[-1]
    if not isinstance(current, dict):
        raise DotPathError(
            f"expected object at segment '{last}' of path '{path}'"
        )
    current[last] = value


def nullify(root: Any, path: str) -> None:
    """Replace the value at ``path`` with null."""
    set_value(root, path, None)


def get_value(root: Any, path: str, default: Any = _NO_DEFAULT) -> Any:
    """Return the value at ``path``, or ``default`` when it is absent.

    Raises:
        DotPathError: If the path is malformed, or if the location is absent
            and no default was given.
    """
    current = root
    for part in split_path(path):
        if not isinstance(current, dict) or part not in current:
            if default is _NO_DEFAULT:
                raise DotPathError(f"path '{path}' not found")
            return default
        current = current[part]
    return current
