"""Storage — Format backends, encryption codec and atomic file writes.

Security Note (Threat Model):
    The encrypted binary format protects the file at rest only. The
    passphrase-derived key and the decoded configuration live in process
    memory while an operation runs; a memory dump of the process can expose
    them. Fields kept in the OS keyring never reach the file at all.
"""

from .atomic import atomic_write_bytes
from .backends import (
    StorageBackend,
    JsonBackend,
    YamlBackend,
    BinaryBackend,
    EncryptedBinaryBackend,
    backend_for,
)
from .crypto import derive_key, encrypt_bytes, decrypt_bytes

__all__ = [
    "atomic_write_bytes",
    "StorageBackend",
    "JsonBackend",
    "YamlBackend",
    "BinaryBackend",
    "EncryptedBinaryBackend",
    "backend_for",
    "derive_key",
    "encrypt_bytes",
    "decrypt_bytes",
]
