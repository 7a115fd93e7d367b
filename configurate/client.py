"""
Configurate Client — Schema-driven access to a single configuration file.

A schema is a nested dict whose leaves are type markers (``str``, ``int``...)
or ``Secret("id")`` markers. Secret fields are kept in the secret store and
written as null in the file::

    schema = {
        "app_name": str,
        "database": {"host": str, "password": Secret("db-password")},
    }
    config = Configurate(
        schema, name="app.json", base_dir=config_dir, format="json",
    )
    opts = SecretOptions(service="my-app", account="default")

    config.create(data, secret_options=opts)      # secrets -> keyring
    locked = config.load()                        # password is None
    unlocked = locked.unlock(opts)                # password inlined
"""
import copy
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

import orjson

from . import dotpath, operations
from .conf import ConfigurateSettings
from .exceptions import ConfigurateError, InvalidPayloadError
from .keyring_store import SecretStore
from .models import (
    ConfigPayload,
    SecretDescriptor,
    SecretOptions,
    StorageFormat,
    UnlockPayload,
)
from .paths import validate_path_component, validate_relative_path

logger = logging.getLogger("configurate")

_INHERIT = object()


class Secret:
    """Marks a schema field as kept in the secret store under ``id``."""

    __slots__ = ("id",)

    def __init__(self, id: str):
        if not id:
            raise InvalidPayloadError("secret id must not be empty")
        self.id = id

    def __repr__(self) -> str:
        return f"Secret({self.id!r})"


def collect_secret_paths(schema: Mapping, prefix: str = "") -> list[tuple[str, str]]:
    """Return ``(id, dotpath)`` for every ``Secret`` marker in ``schema``.

    Raises:
        InvalidPayloadError: If a secret id is used more than once.
    """
    found: list[tuple[str, str]] = []
    for key, value in schema.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, Secret):
            found.append((value.id, path))
        elif isinstance(value, Mapping):
            found.extend(collect_secret_paths(value, path))
    if not prefix:
        seen: set[str] = set()
        for secret_id, _ in found:
            if secret_id in seen:
                raise InvalidPayloadError(f"duplicate secret id {secret_id!r} in schema")
            seen.add(secret_id)
    return found


def separate_secrets(
    data: Any,
    secret_paths: list[tuple[str, str]],
) -> tuple[Any, list[SecretDescriptor]]:
    """Split ``data`` into plain data and secret descriptors.

    Secrets present in ``data`` are serialized to strings (non-strings as
    JSON) and nulled in the returned copy. Absent secrets are skipped.
    """
    plain = copy.deepcopy(data)
    descriptors = []
    for secret_id, path in secret_paths:
        value = dotpath.get_value(plain, path, dotpath.MISSING)
        if value is dotpath.MISSING:
            continue
        serialized = value if isinstance(value, str) else orjson.dumps(value).decode("utf-8")
        descriptors.append(SecretDescriptor(id=secret_id, dotpath=path, value=serialized))
        dotpath.nullify(plain, path)
    return plain, descriptors


class UnlockedConfig:
    """Configuration with secret fields holding their real values."""

    def __init__(self, data: Any):
        self._data = data

    @property
    def data(self) -> Any:
        if self._data is None:
            raise ConfigurateError(
                "cannot access data after lock() has been called; "
                "load or unlock the config again"
            )
        return self._data

    def lock(self) -> None:
        """Drop the reference to the unlocked data.

        Python offers no way to zero memory; the secret strings stay in the
        heap until garbage collected.
        """
        self._data = None


class LockedConfig:
    """Configuration as stored on disk: secret fields are null."""

    def __init__(self, data: Any, configurate: "Configurate"):
        self.data = data
        self._configurate = configurate

    def unlock(self, options: SecretOptions) -> UnlockedConfig:
        """Fetch secrets and inline them; the file is not read again."""
        return self._configurate.unlock_data(self.data, options)


class Configurate:
    """Manage one configuration file described by ``schema``."""

    def __init__(
        self,
        schema: Mapping,
        *,
        name: str,
        base_dir: Union[str, Path],
        format: Union[StorageFormat, str],
        dir_name: Optional[str] = None,
        path: Optional[str] = None,
        encryption_key: Optional[str] = None,
        store: Optional[SecretStore] = None,
        settings: Optional[ConfigurateSettings] = None,
    ):
        self.format = StorageFormat(format)
        if encryption_key is not None and self.format is not StorageFormat.BINARY:
            raise InvalidPayloadError(
                f"encryption_key is only supported with format 'binary', "
                f"got '{self.format.value}'"
            )
        validate_path_component(name, "name")
        if dir_name is not None:
            validate_relative_path(dir_name, "dirNameOverride")
        if path is not None:
            validate_relative_path(path, "subPath")
        self.name = name
        self.base_dir = Path(base_dir)
        self.dir_name = dir_name
        self.path = path
        self._encryption_key = encryption_key
        self._store = store
        self._settings = settings
        self._secret_paths = collect_secret_paths(schema)

    def __repr__(self) -> str:
        return (
            f"<Configurate name={self.name!r} format={self.format.value} "
            f"secrets={[secret_id for secret_id, _ in self._secret_paths]}>"
        )

    def _payload(
        self,
        data: Any = None,
        options: Optional[SecretOptions] = None,
        with_unlock: bool = False,
        writing: bool = False,
    ) -> ConfigPayload:
        descriptors = None
        if writing:
            plain, found = separate_secrets(data, self._secret_paths)
            if options is not None and found:
                # the orchestrator nulls these itself and keeps the unlocked copy
                descriptors = found
            else:
                data = plain
        elif options is not None and self._secret_paths:
            descriptors = [
                SecretDescriptor(id=secret_id, dotpath=path)
                for secret_id, path in self._secret_paths
            ]
        return ConfigPayload(
            name=self.name,
            base_dir=self.base_dir,
            dir_name_override=self.dir_name,
            sub_path=self.path,
            format=self.format,
            data=data,
            secret_descriptors=descriptors,
            secret_options=options if descriptors is not None else None,
            with_unlock=with_unlock,
            encryption_passphrase=self._encryption_key,
        )

    def _run(self, op: str, payload: ConfigPayload) -> Any:
        handler = getattr(operations, op)
        return handler(payload, store=self._store, settings=self._settings)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, data: Any, secret_options: Optional[SecretOptions] = None) -> LockedConfig:
        """Create the file. Without ``secret_options`` secrets are dropped, never written."""
        payload = self._payload(data, secret_options, writing=True)
        return LockedConfig(self._run("create", payload), self)

    def create_unlocked(self, data: Any, secret_options: SecretOptions) -> UnlockedConfig:
        payload = self._payload(data, secret_options, with_unlock=True, writing=True)
        return UnlockedConfig(self._run("create", payload))

    def save(self, data: Any, secret_options: Optional[SecretOptions] = None) -> LockedConfig:
        """Overwrite the file; secret store entries are overwritten as well."""
        payload = self._payload(data, secret_options, writing=True)
        return LockedConfig(self._run("save", payload), self)

    def save_unlocked(self, data: Any, secret_options: SecretOptions) -> UnlockedConfig:
        payload = self._payload(data, secret_options, with_unlock=True, writing=True)
        return UnlockedConfig(self._run("save", payload))

    def load(self) -> LockedConfig:
        """Read the file; secret fields are null."""
        return LockedConfig(self._run("load", self._payload()), self)

    def load_unlocked(self, secret_options: SecretOptions) -> UnlockedConfig:
        """Read the file and inline secrets in one call."""
        payload = self._payload(options=secret_options, with_unlock=True)
        return UnlockedConfig(self._run("load", payload))

    def delete(self, secret_options: Optional[SecretOptions] = None) -> None:
        """Remove the file and, given ``secret_options``, its secret entries."""
        self._run("delete", self._payload(options=secret_options))

    def unlock_data(self, data: Any, secret_options: SecretOptions) -> UnlockedConfig:
        """Inline secrets into already-loaded data without reading the file."""
        if not self._secret_paths:
            return UnlockedConfig(copy.deepcopy(data))
        payload = UnlockPayload(
            data=data,
            secret_descriptors=[
                SecretDescriptor(id=secret_id, dotpath=path)
                for secret_id, path in self._secret_paths
            ],
            secret_options=secret_options,
        )
        return UnlockedConfig(operations.unlock(payload, store=self._store))


class ConfigurateFactory:
    """Build ``Configurate`` instances that share base options.

    ``build`` arguments left out inherit the factory value; passing ``None``
    for ``dir_name`` or ``path`` disables the factory value for that file.
    """

    def __init__(
        self,
        *,
        base_dir: Union[str, Path],
        format: Union[StorageFormat, str],
        dir_name: Optional[str] = None,
        path: Optional[str] = None,
        encryption_key: Optional[str] = None,
        store: Optional[SecretStore] = None,
        settings: Optional[ConfigurateSettings] = None,
    ):
        self._options = {
            "base_dir": base_dir,
            "format": format,
            "dir_name": dir_name,
            "path": path,
            "encryption_key": encryption_key,
            "store": store,
            "settings": settings,
        }

    def build(
        self,
        schema: Mapping,
        name: str,
        *,
        dir_name: Any = _INHERIT,
        path: Any = _INHERIT,
    ) -> Configurate:
        options = dict(self._options)
        if dir_name is not _INHERIT:
            options["dir_name"] = dir_name
        if path is not _INHERIT:
            options["path"] = path
        return Configurate(schema, name=name, **options)
