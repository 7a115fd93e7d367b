"""
Configurate Operations — create, load, save, delete and unlock.

Every operation validates its request before touching the filesystem or the
secret store:

- secret descriptors and secret options must be given together or not at all;
- path components must be safe single segments;
- an encryption passphrase is only accepted with the binary format;
- every secret dotpath must be well formed.

Known limitation:
    Writing secrets to the secret store and writing the file are two separate
    steps. A crash between them can leave the store and the file out of step;
    this is not retried or rolled back.
"""
import copy
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Optional, TypeVar

import orjson

from . import dotpath
from .conf import ConfigurateSettings
from .exceptions import InvalidPayloadError, StorageIOError
from .keyring_store import KeyringSecretStore, SecretStore
from .models import (
    ConfigPayload,
    SecretDescriptor,
    SecretOptions,
    StorageFormat,
    UnlockPayload,
)
from .paths import resolve_path
from .storage import StorageBackend, backend_for

logger = logging.getLogger("configurate")

T = TypeVar("T")

SecretBatch = tuple[list[SecretDescriptor], SecretOptions]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def secret_pair(
    op: str,
    descriptors: Optional[list[SecretDescriptor]],
    options: Optional[SecretOptions],
) -> Optional[SecretBatch]:
    """Check that descriptors and options are supplied together.

    Returns:
        ``(descriptors, options)`` when both are present, ``None`` when both
        are absent.

    Raises:
        InvalidPayloadError: If only one side is present.
        DotPathError: If a descriptor dotpath is malformed.
    """
    if descriptors is None and options is None:
        return None
    if options is None:
        raise InvalidPayloadError(
            f"invalid '{op}' payload: secretDescriptors provided without secretOptions"
        )
    if descriptors is None:
        raise InvalidPayloadError(
            f"invalid '{op}' payload: secretOptions provided without secretDescriptors"
        )
    for descriptor in descriptors:
        dotpath.split_path(descriptor.dotpath)
    return descriptors, options


def _check_passphrase(op: str, payload: ConfigPayload) -> None:
    if payload.encryption_passphrase is not None and payload.format is not StorageFormat.BINARY:
        raise InvalidPayloadError(
            f"invalid '{op}' payload: encryptionPassphrase is only supported "
            f"with format 'binary', got '{payload.format.value}'"
        )


def _prepare(
    op: str,
    payload: ConfigPayload,
    settings: ConfigurateSettings,
) -> tuple[StorageBackend, Path, Optional[SecretBatch]]:
    batch = secret_pair(op, payload.secret_descriptors, payload.secret_options)
    _check_passphrase(op, payload)
    path = resolve_path(
        payload.base_dir,
        payload.name,
        dir_name_override=payload.dir_name_override,
        sub_path=payload.sub_path,
        identifier=settings.app_identifier,
    )
    backend = backend_for(payload.format, payload.encryption_passphrase)
    return backend, path, batch


# ---------------------------------------------------------------------------
# Secret extraction / reinflation
# ---------------------------------------------------------------------------

def attempt_all(items: Iterable[T], action: Callable[[T], Any]) -> None:
    """Run ``action`` on every item; failures are logged and discarded.

    Nothing is returned: every item is attempted no matter how many fail.
    """
    for item in items:
        try:
            action(item)
        except Exception as err:
            logger.warning("Best-effort cleanup failed for %r: %s", item, err)


def parse_secret(raw: str) -> Any:
    """Interpret a fetched secret: JSON when it parses, else the raw string."""
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw


def extract_secrets(data: Any, batch: SecretBatch, store: SecretStore) -> None:
    """Null every secret dotpath in ``data`` and put its value in the store.

    Dotpaths are nulled in memory first so a bad path fails before the
    secret store is touched.
    """
    descriptors, options = batch
    for descriptor in descriptors:
        dotpath.nullify(data, descriptor.dotpath)
    for descriptor in descriptors:
        store.set(options, descriptor.id, descriptor.value)
        logger.debug("Stored secret id=%s", descriptor.id)


def inline_secrets(data: Any, batch: SecretBatch, store: SecretStore) -> Any:
    """Fetch each secret and set it at its dotpath inside ``data``.

    Raises:
        SecretNotFoundError: If a requested secret is missing.
    """
    descriptors, options = batch
    for descriptor in descriptors:
        secret = store.get(options, descriptor.id)
        dotpath.set_value(data, descriptor.dotpath, parse_secret(secret))
    return data


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def _write(
    op: str,
    payload: ConfigPayload,
    store: Optional[SecretStore],
    settings: Optional[ConfigurateSettings],
) -> Any:
    settings = settings or ConfigurateSettings.from_env()
    backend, path, batch = _prepare(op, payload, settings)
    data = copy.deepcopy(payload.data) if payload.data is not None else {}
    unlocked = copy.deepcopy(data) if payload.with_unlock else None
    if batch is not None:
        extract_secrets(data, batch, store or KeyringSecretStore())
    backend.write(path, data, fsync=settings.fsync, mode=settings.file_mode)
    logger.debug("%s: wrote %s (%s)", op, path, backend.name)
    return unlocked if unlocked is not None else data


def create(
    payload: ConfigPayload,
    *,
    store: Optional[SecretStore] = None,
    settings: Optional[ConfigurateSettings] = None,
) -> Any:
    """Create a configuration file.

    Secrets are written to the secret store and nulled in the file. Returns
    the unlocked data when ``with_unlock`` is set, else the on-disk data.
    """
    return _write("create", payload, store, settings)


def save(
    payload: ConfigPayload,
    *,
    store: Optional[SecretStore] = None,
    settings: Optional[ConfigurateSettings] = None,
) -> Any:
    """Overwrite a configuration file; secret store entries are overwritten too."""
    return _write("save", payload, store, settings)


def load(
    payload: ConfigPayload,
    *,
    store: Optional[SecretStore] = None,
    settings: Optional[ConfigurateSettings] = None,
) -> Any:
    """Load a configuration file.

    Secret dotpaths stay null unless ``with_unlock`` is set, in which case
    the secrets are fetched and inlined.
    """
    settings = settings or ConfigurateSettings.from_env()
    backend, path, batch = _prepare("load", payload, settings)
    data = backend.read(path)
    logger.debug("load: read %s (%s)", path, backend.name)
    if payload.with_unlock and batch is not None:
        inline_secrets(data, batch, store or KeyringSecretStore())
    return data


def delete(
    payload: ConfigPayload,
    *,
    store: Optional[SecretStore] = None,
    settings: Optional[ConfigurateSettings] = None,
) -> None:
    """Delete a configuration file and its secret store entries.

    Secret entries are removed best-effort: every descriptor is attempted
    and individual failures are discarded. A missing file is not an error.

    Raises:
        StorageIOError: If the file exists but cannot be removed.
    """
    settings = settings or ConfigurateSettings.from_env()
    _, path, batch = _prepare("delete", payload, settings)
    if batch is not None:
        descriptors, options = batch
        secrets = store or KeyringSecretStore()
        attempt_all(
            descriptors,
            lambda descriptor: secrets.delete(options, descriptor.id),
        )
    try:
        path.unlink()
    except FileNotFoundError:
        logger.debug("delete: %s did not exist", path)
        return
    except OSError as err:
        raise StorageIOError(f"cannot remove {path}: {err}") from err
    logger.debug("delete: removed %s", path)


def unlock(
    payload: UnlockPayload,
    *,
    store: Optional[SecretStore] = None,
) -> Any:
    """Inline secrets into already-loaded data without reading the file."""
    batch = secret_pair("unlock", payload.secret_descriptors, payload.secret_options)
    data = copy.deepcopy(payload.data)
    if batch is not None:
        inline_secrets(data, batch, store or KeyringSecretStore())
    return data
