"""Path component validation and config file path resolution.

Resolving OS base directories is left to the caller; this module only joins
an already-resolved base directory with validated relative segments:

    <base_dir>/<dir_name_override | identifier>/<sub_path>/<name>
"""
from pathlib import Path
from typing import Optional

from .exceptions import InvalidPayloadError

FORBIDDEN_CHARS = frozenset('/\\:*?"<>|\0')


def validate_path_component(component: str, field: str = "name") -> None:
    """Validate a single file or directory name segment.

    Leading dots are allowed so names like ``.env`` work. Rejected: empty,
    all dots (``.``, ``..``), path separators, reserved characters
    (``: * ? " < > |``), NUL, and a trailing space or dot.

    Raises:
        InvalidPayloadError: If the component is not acceptable.
    """
    if (
        not component
        or set(component) == {"."}
        or any(char in FORBIDDEN_CHARS for char in component)
        or component.endswith((" ", "."))
    ):
        raise InvalidPayloadError(
            f"invalid {field} component {component!r}: must not be empty or "
            "only dots, must not contain path separators or reserved "
            "characters (: * ? \" < > |), and must not end with a space or dot"
        )


def validate_relative_path(value: str, field: str) -> list[str]:
    """Validate a ``/``-separated relative path and return its segments."""
    if not value:
        raise InvalidPayloadError(f"{field} must not be empty")
    segments = value.split("/")
    for segment in segments:
        validate_path_component(segment, field)
    return segments


def resolve_path(
    base_dir: Path,
    name: str,
    dir_name_override: Optional[str] = None,
    sub_path: Optional[str] = None,
    identifier: Optional[str] = None,
) -> Path:
    """Build the absolute path of a configuration file.

    ``dir_name_override`` replaces the application identifier segment; when
    neither is given the file lives directly under ``base_dir`` (plus
    ``sub_path``).

    Raises:
        InvalidPayloadError: If any component is invalid.
    """
    validate_path_component(name, "name")
    root = Path(base_dir)
    if dir_name_override is not None:
        root = root.joinpath(*validate_relative_path(dir_name_override, "dirNameOverride"))
    elif identifier is not None:
        root = root.joinpath(*validate_relative_path(identifier, "identifier"))
    if sub_path is not None:
        root = root.joinpath(*validate_relative_path(sub_path, "subPath"))
    return root / name
