"""Configurate — Configuration files with secrets kept in the OS keyring.

Security Note (Threat Model):
    Secret fields are written to the OS keyring and stored as null in the
    configuration file. The keyring write and the file write are separate
    steps; a crash in between can leave them out of step. This is an
    accepted limitation.
"""

from .version import __version__
from .exceptions import (
    ConfigurateError,
    StorageIOError,
    StorageCodecError,
    SecretStoreError,
    SecretNotFoundError,
    DotPathError,
    InvalidPayloadError,
)
from .models import (
    StorageFormat,
    SecretDescriptor,
    SecretOptions,
    ConfigPayload,
    UnlockPayload,
)
from .conf import ConfigurateSettings
from .keyring_store import SecretStore, KeyringSecretStore, MemorySecretStore
from .operations import create, load, save, delete, unlock
from .client import (
    Secret,
    Configurate,
    ConfigurateFactory,
    LockedConfig,
    UnlockedConfig,
)

__all__ = [
    "__version__",
    "ConfigurateError",
    "StorageIOError",
    "StorageCodecError",
    "SecretStoreError",
    "SecretNotFoundError",
    "DotPathError",
    "InvalidPayloadError",
    "StorageFormat",
    "SecretDescriptor",
    "SecretOptions",
    "ConfigPayload",
    "UnlockPayload",
    "ConfigurateSettings",
    "SecretStore",
    "KeyringSecretStore",
    "MemorySecretStore",
    "create",
    "load",
    "save",
    "delete",
    "unlock",
    "Secret",
    "Configurate",
    "ConfigurateFactory",
    "LockedConfig",
    "UnlockedConfig",
]
