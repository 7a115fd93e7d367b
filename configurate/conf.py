"""
Configurate Settings — Environment-driven defaults for the persistence engine.

Reads settings from environment variables:
    CONFIGURATE_APP_IDENTIFIER = <directory segment under the base directory>
    CONFIGURATE_FSYNC = 1 | 0 | true | false
    CONFIGURATE_FILE_MODE = <octal permission bits, e.g. 600>

Security Note:
    Settings never carry secrets; encryption passphrases are supplied per call.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, field_validator

from .exceptions import InvalidPayloadError
from .paths import validate_relative_path

logger = logging.getLogger("configurate")

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def parse_bool(name: str, raw: str) -> bool:
    """Parse a boolean environment value.

    Raises:
        ValueError: If the value is not a recognised boolean.
    """
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def parse_mode(name: str, raw: str) -> int:
    """Parse an octal permission mode such as ``600`` or ``0o600``.

    Raises:
        ValueError: If the value is not an octal number.
    """
    value = raw.strip().lower().removeprefix("0o")
    try:
        return int(value, 8)
    except ValueError:
        raise ValueError(f"{name} must be an octal mode, got {raw!r}") from None


class ConfigurateSettings(BaseModel):
    """Validated Configurate settings."""

    app_identifier: Optional[str] = None
    fsync: bool = True
    file_mode: Optional[int] = None

    @field_validator("app_identifier")
    @classmethod
    def validate_identifier(cls, v: Optional[str]) -> Optional[str]:
        """Ensure the identifier is a safe relative directory."""
        if v is not None:
            try:
                validate_relative_path(v, "app_identifier")
            except InvalidPayloadError as err:
                raise ValueError(err.message) from err
        return v

    @field_validator("file_mode")
    @classmethod
    def validate_mode(cls, v: Optional[int]) -> Optional[int]:
        """Ensure the file mode only holds permission bits."""
        if v is not None and not 0 <= v <= 0o777:
            raise ValueError(f"file_mode out of range: {oct(v)}")
        return v

    @classmethod
    def from_env(cls) -> "ConfigurateSettings":
        """Create ConfigurateSettings by loading values from environment.

        Returns:
            Populated ConfigurateSettings instance.
        """
        values = {}
        identifier = os.environ.get("CONFIGURATE_APP_IDENTIFIER")
        if identifier:
            values["app_identifier"] = identifier
        fsync = os.environ.get("CONFIGURATE_FSYNC")
        if fsync is not None:
            values["fsync"] = parse_bool("CONFIGURATE_FSYNC", fsync)
        mode = os.environ.get("CONFIGURATE_FILE_MODE")
        if mode:
            values["file_mode"] = parse_mode("CONFIGURATE_FILE_MODE", mode)
        settings = cls(**values)
        logger.debug(
            "Loaded settings: identifier=%s fsync=%s file_mode=%s",
            settings.app_identifier,
            settings.fsync,
            None if settings.file_mode is None else oct(settings.file_mode),
        )
        return settings
