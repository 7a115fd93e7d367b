"""
Secret Store — Keyed secret storage outside the configuration file.

Each entry is addressed with:
    service = options.service          (e.g. "my-app")
    user    = f"{account}/{id}"        (e.g. "default/api-key")

``/`` is used as the separator rather than ``:`` because Windows Credential
Manager builds its target name from user and service, and ``:`` in that
string is misread by some keyring backends.

Security Note:
    Never log secret values. Only log service, user and operation names.
"""
import logging
from abc import ABC, abstractmethod

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .exceptions import SecretNotFoundError, SecretStoreError
from .models import SecretOptions

logger = logging.getLogger("configurate")


def build_user(options: SecretOptions, secret_id: str) -> str:
    """Build the keyring user string ``{account}/{id}``."""
    return f"{options.account}/{secret_id}"


class SecretStore(ABC):
    """Abstract secret facility: set / get / delete by composite key."""

    @abstractmethod
    def set(self, options: SecretOptions, secret_id: str, value: str) -> None:
        """Store ``value``, overwriting any existing entry."""

    @abstractmethod
    def get(self, options: SecretOptions, secret_id: str) -> str:
        """Return the stored value.

        Raises:
            SecretNotFoundError: If no entry exists.
            SecretStoreError: If the facility fails.
        """

    @abstractmethod
    def delete(self, options: SecretOptions, secret_id: str) -> None:
        """Remove an entry; a missing entry is not an error."""


class KeyringSecretStore(SecretStore):
    """Secret store backed by the OS keyring through ``keyring``."""

    def set(self, options: SecretOptions, secret_id: str, value: str) -> None:
        user = build_user(options, secret_id)
        try:
            keyring.set_password(options.service, user, value)
        except KeyringError as err:
            raise SecretStoreError(
                f"cannot store {options.service}/{user}: {err}"
            ) from err
        logger.debug("Keyring set: service=%s user=%s", options.service, user)

    def get(self, options: SecretOptions, secret_id: str) -> str:
        user = build_user(options, secret_id)
        try:
            value = keyring.get_password(options.service, user)
        except KeyringError as err:
            raise SecretStoreError(
                f"cannot read {options.service}/{user}: {err}"
            ) from err
        if value is None:
            raise SecretNotFoundError(
                f"no entry for service={options.service!r} user={user!r}"
            )
        return value

    def delete(self, options: SecretOptions, secret_id: str) -> None:
        user = build_user(options, secret_id)
        try:
            keyring.delete_password(options.service, user)
        except PasswordDeleteError:
            # entry did not exist
            return
        except KeyringError as err:
            raise SecretStoreError(
                f"cannot delete {options.service}/{user}: {err}"
            ) from err
        logger.debug("Keyring delete: service=%s user=%s", options.service, user)


class MemorySecretStore(SecretStore):
    """In-process secret store for tests and headless environments.

    Entries live as long as the instance; nothing is persisted.
    """

    def __init__(self):
        self._entries: dict[tuple[str, str], str] = {}

    def set(self, options: SecretOptions, secret_id: str, value: str) -> None:
        self._entries[(options.service, build_user(options, secret_id))] = value

    def get(self, options: SecretOptions, secret_id: str) -> str:
        user = build_user(options, secret_id)
        try:
            return self._entries[(options.service, user)]
        except KeyError:
            raise SecretNotFoundError(
                f"no entry for service={options.service!r} user={user!r}"
            ) from None

    def delete(self, options: SecretOptions, secret_id: str) -> None:
        self._entries.pop((options.service, build_user(options, secret_id)), None)

    def entries(self) -> dict[tuple[str, str], str]:
        """Return a copy of the stored ``(service, user) -> value`` entries."""
        return dict(self._entries)
