"""Configurate error types.

Every error carries a stable ``kind`` tag and a human-readable message so it
can be reported across a process or IPC boundary with ``to_dict()``.
"""


class ConfigurateError(Exception):
    """Base error for Configurate."""

    kind: str = "configurate"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.replace('_', ' ')} error: {self.message}"

    def to_dict(self) -> dict:
        """Serialize the error as ``{"kind": ..., "message": ...}``."""
        return {"kind": self.kind, "message": str(self)}


class StorageIOError(ConfigurateError):
    """Raised when reading, writing or removing a configuration file fails."""

    kind = "io"


class StorageCodecError(ConfigurateError):
    """Raised when a payload cannot be encoded, decoded or decrypted."""

    kind = "storage_codec"


class SecretStoreError(ConfigurateError):
    """Raised when the secret facility fails."""

    kind = "secret_store"


class SecretNotFoundError(SecretStoreError):
    """Raised when a requested secret does not exist in the secret facility."""


class DotPathError(ConfigurateError):
    """Raised for malformed dotpaths or traversal through a non-mapping node."""

    kind = "dotpath"


class InvalidPayloadError(ConfigurateError):
    """Raised when an operation request is malformed."""

    kind = "invalid_payload"
