"""
Configurate Models — Structured values, secret descriptors and request payloads.

Request payloads accept both snake_case field names and the camelCase names
used on the wire (``secretDescriptors``, ``withUnlock``...).
"""
import math
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .exceptions import InvalidPayloadError


StructuredValue = Union[
    None, bool, int, float, str, list["StructuredValue"], dict[str, "StructuredValue"]
]


def is_structured(value: Any) -> bool:
    """Check that ``value`` is a well-formed structured value tree.

    Only JSON-native types are accepted; mapping keys must be strings and
    floats must be finite.
    """
    if isinstance(value, float):
        return math.isfinite(value)
    if value is None or isinstance(value, (bool, int, str)):
        return True
    if isinstance(value, list):
        return all(is_structured(item) for item in value)
    if isinstance(value, dict):
        return all(
            isinstance(key, str) and is_structured(item)
            for key, item in value.items()
        )
    return False


class StorageFormat(str, Enum):
    """Supported on-disk storage formats."""

    JSON = "json"
    YAML = "yaml"
    BINARY = "binary"


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    @classmethod
    def from_request(cls, raw: Any):
        """Build a payload from a wire mapping.

        Raises:
            InvalidPayloadError: If the mapping does not validate.
        """
        try:
            return cls.model_validate(raw)
        except ValidationError as err:
            raise InvalidPayloadError(
                f"invalid '{cls.__name__}' request: {err}"
            ) from err


class SecretDescriptor(_Payload):
    """One field to keep in the secret store instead of on disk."""

    id: str = Field(min_length=1)
    dotpath: str
    value: str = Field(default="", repr=False)


class SecretOptions(_Payload):
    """Secret store namespace: ``service`` plus ``{account}/{id}`` users."""

    service: str = Field(min_length=1)
    account: str = Field(min_length=1)


class ConfigPayload(_Payload):
    """Request for the create / load / save / delete operations."""

    name: str
    base_dir: Path
    dir_name_override: Optional[str] = None
    sub_path: Optional[str] = None
    format: StorageFormat
    data: Optional[Any] = None
    secret_descriptors: Optional[list[SecretDescriptor]] = None
    secret_options: Optional[SecretOptions] = None
    with_unlock: bool = False
    encryption_passphrase: Optional[str] = Field(default=None, repr=False)

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: Any) -> Any:
        """Ensure data is a structured value tree."""
        if not is_structured(v):
            raise ValueError("data must be a JSON-compatible structured value")
        return v


class UnlockPayload(_Payload):
    """Request for the unlock operation: already-loaded data plus secrets."""

    data: Any
    secret_descriptors: Optional[list[SecretDescriptor]] = None
    secret_options: Optional[SecretOptions] = None

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: Any) -> Any:
        """Ensure data is a structured value tree."""
        if not is_structured(v):
            raise ValueError("data must be a JSON-compatible structured value")
        return v
