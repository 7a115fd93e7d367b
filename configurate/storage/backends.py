"""
Storage Backends — one codec per on-disk format.

| Backend                  | Layout                                   | Extension |
|--------------------------|------------------------------------------|-----------|
| ``JsonBackend``          | pretty JSON                              | json      |
| ``YamlBackend``          | block YAML, key order kept               | yaml      |
| ``BinaryBackend``        | [u64 LE length][compact JSON]            | bin       |
| ``EncryptedBinaryBackend`` | [nonce 24B][ciphertext][tag 16B]       | binc      |

``BinaryBackend`` is not encrypted; use ``EncryptedBinaryBackend`` (selected
by passing an encryption key with the binary format) when confidentiality is
required.
"""
import struct
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import orjson
import yaml

from ..exceptions import StorageCodecError, StorageIOError
from ..models import StorageFormat, is_structured
from .atomic import atomic_write_bytes
from .crypto import decrypt_bytes, derive_key, encrypt_bytes

logger = logging.getLogger("configurate")

_LENGTH_PREFIX = struct.Struct("<Q")


class _YamlLoader(yaml.SafeLoader):
    """Safe loader that keeps timestamps as plain strings."""


_YamlLoader.yaml_implicit_resolvers = {
    first: [
        (tag, regexp) for tag, regexp in resolvers
        if tag != "tag:yaml.org,2002:timestamp"
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _yaml_key(key: Any) -> Any:
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, (int, float)):
        return str(key)
    return key


def stringify_keys(value: Any) -> Any:
    """Turn boolean and numeric mapping keys into strings, as JSON would.

    ``{8080: "web"}`` becomes ``{"8080": "web"}``. Other key types are left
    alone and rejected later by the structured value check.
    """
    if isinstance(value, dict):
        return {_yaml_key(key): stringify_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [stringify_keys(item) for item in value]
    return value


class StorageBackend(ABC):
    """Encode/decode structured values for one storage format."""

    name: str = ""
    #: conventional file suffix; informational, the caller's file name is used as is
    extension: str = ""

    @abstractmethod
    def encode(self, value: Any) -> bytes:
        """Serialize ``value`` to the on-disk byte layout."""

    @abstractmethod
    def decode(self, data: bytes) -> Any:
        """Parse on-disk bytes back into a structured value."""

    def read(self, path: Path) -> Any:
        """Read and decode the file at ``path``.

        Raises:
            StorageIOError: If the file cannot be read.
            StorageCodecError: If the content is malformed.
        """
        try:
            data = Path(path).read_bytes()
        except OSError as err:
            raise StorageIOError(f"cannot read {path}: {err}") from err
        return self.decode(data)

    def write(
        self,
        path: Path,
        value: Any,
        *,
        fsync: bool = True,
        mode: Optional[int] = None,
    ) -> None:
        """Encode ``value`` and atomically write it to ``path``.

        Raises:
            StorageCodecError: If the value cannot be encoded.
            StorageIOError: If the file cannot be written.
        """
        payload = self.encode(value)
        try:
            atomic_write_bytes(Path(path), payload, fsync=fsync, mode=mode)
        except OSError as err:
            raise StorageIOError(f"cannot write {path}: {err}") from err
        logger.debug("Wrote %d bytes (%s) to %s", len(payload), self.name, path)

    def _codec_error(self, err: Exception) -> StorageCodecError:
        return StorageCodecError(f"{self.name}: {err}")

    def _check_encodable(self, value: Any) -> None:
        # orjson writes NaN and infinities as null
        if not is_structured(value):
            raise StorageCodecError(
                f"{self.name}: value is not a JSON-compatible structured value"
            )


class JsonBackend(StorageBackend):
    name = "json"
    extension = "json"

    def encode(self, value: Any) -> bytes:
        self._check_encodable(value)
        try:
            return orjson.dumps(value, option=orjson.OPT_INDENT_2)
        except orjson.JSONEncodeError as err:
            raise self._codec_error(err) from err

    def decode(self, data: bytes) -> Any:
        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise self._codec_error(err) from err


class YamlBackend(StorageBackend):
    name = "yaml"
    extension = "yaml"

    def encode(self, value: Any) -> bytes:
        self._check_encodable(value)
        try:
            text = yaml.safe_dump(
                value,
                sort_keys=False,
                allow_unicode=True,
                default_flow_style=False,
            )
        except yaml.YAMLError as err:
            raise self._codec_error(err) from err
        return text.encode("utf-8")

    def decode(self, data: bytes) -> Any:
        try:
            value = yaml.load(data, Loader=_YamlLoader)
        except yaml.YAMLError as err:
            raise self._codec_error(err) from err
        value = stringify_keys(value)
        if not is_structured(value):
            raise StorageCodecError(
                f"{self.name}: document is not a JSON-compatible value"
            )
        return value


class BinaryBackend(StorageBackend):
    """Length-prefixed compact JSON, unencrypted."""

    name = "binary"
    extension = "bin"

    def encode(self, value: Any) -> bytes:
        self._check_encodable(value)
        try:
            body = orjson.dumps(value)
        except orjson.JSONEncodeError as err:
            raise self._codec_error(err) from err
        return _LENGTH_PREFIX.pack(len(body)) + body

    def decode(self, data: bytes) -> Any:
        if len(data) < _LENGTH_PREFIX.size:
            raise StorageCodecError(f"{self.name}: missing length prefix")
        (length,) = _LENGTH_PREFIX.unpack_from(data)
        body = data[_LENGTH_PREFIX.size:]
        if length != len(body):
            raise StorageCodecError(
                f"{self.name}: length prefix {length} does not match "
                f"payload size {len(body)}"
            )
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as err:
            raise self._codec_error(err) from err


class EncryptedBinaryBackend(StorageBackend):
    """Compact JSON sealed with XChaCha20-Poly1305.

    The 32-byte cipher key is SHA-256 of the caller-supplied key string.
    """

    name = "binary(encrypted)"
    extension = "binc"

    def __init__(self, encryption_key: str):
        self._key = derive_key(encryption_key)

    def encode(self, value: Any) -> bytes:
        self._check_encodable(value)
        try:
            body = orjson.dumps(value)
        except orjson.JSONEncodeError as err:
            raise self._codec_error(err) from err
        return encrypt_bytes(body, self._key)

    def decode(self, data: bytes) -> Any:
        try:
            plaintext = decrypt_bytes(data, self._key)
        except StorageCodecError as err:
            raise StorageCodecError(f"{self.name}: {err.message}") from None
        try:
            return orjson.loads(plaintext)
        except orjson.JSONDecodeError as err:
            raise self._codec_error(err) from err


def backend_for(
    format: StorageFormat,
    encryption_key: Optional[str] = None,
) -> StorageBackend:
    """Return the backend for ``format``.

    The binary format is encrypted when ``encryption_key`` is given and plain
    otherwise. Text formats ignore the key; callers reject that combination
    before getting here.
    """
    fmt = StorageFormat(format)
    if fmt is StorageFormat.JSON:
        return JsonBackend()
    if fmt is StorageFormat.YAML:
        return YamlBackend()
    if encryption_key is not None:
        return EncryptedBinaryBackend(encryption_key)
    return BinaryBackend()
