"""
Storage Crypto Core — Key derivation and XChaCha20-Poly1305 sealing.

Implements the encrypted binary layout:
    [nonce 24B][ciphertext][Poly1305 tag 16B]

XChaCha20-Poly1305 is composed from ChaCha20 primitives:
    subkey = HChaCha20(key, nonce[:16])
    ChaCha20-Poly1305(subkey, 0x00000000 || nonce[16:]) → ciphertext + tag

Security Note:
    Never log passphrases, derived keys, plaintext or ciphertext values.
    Nonces are random 192-bit; collision probability is negligible even
    for a very large number of writes under the same key.
"""
import os
import struct
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from ..exceptions import StorageCodecError

logger = logging.getLogger("configurate")

NONCE_SIZE = 24  # 192-bit XChaCha20 nonce
TAG_SIZE = 16  # Poly1305
KEY_LENGTH = 32  # 256-bit

# "expand 32-byte k"
_SIGMA = (0x61707865, 0x3320646E, 0x79622D32, 0x6B206574)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(passphrase: str) -> bytes:
    """Derive a 32-byte cipher key as SHA-256 of the passphrase.

    The passphrase should be high-entropy (e.g. a random key kept in the
    OS keyring); no salt or stretching is applied.

    Args:
        passphrase: Caller-supplied key string.

    Returns:
        32-byte derived key.
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(passphrase.encode("utf-8"))
    return digest.finalize()


def hchacha20(key: bytes, nonce: bytes) -> bytes:
    """Compute the HChaCha20 subkey for ``key`` and a 16-byte ``nonce``.

    One raw ChaCha20 block is ``rounds(state) + state``; HChaCha20 is words
    0..3 and 12..15 of ``rounds(state)``, so the known input words are
    subtracted back out of the keystream.

    Args:
        key: 32-byte key.
        nonce: 16-byte input occupying state words 12..15.

    Returns:
        32-byte subkey.
    """
    if len(key) != KEY_LENGTH:
        raise ValueError(f"key must be {KEY_LENGTH} bytes, got {len(key)}")
    if len(nonce) != 16:
        raise ValueError(f"HChaCha20 nonce must be 16 bytes, got {len(nonce)}")
    encryptor = Cipher(algorithms.ChaCha20(key, nonce), mode=None).encryptor()
    block = struct.unpack("<16I", encryptor.update(bytes(64)))
    words = struct.unpack("<4I", nonce)
    head = [(block[i] - _SIGMA[i]) & 0xFFFFFFFF for i in range(4)]
    tail = [(block[12 + i] - words[i]) & 0xFFFFFFFF for i in range(4)]
    return struct.pack("<8I", *head, *tail)


def _cipher_for(key: bytes, nonce: bytes) -> tuple[ChaCha20Poly1305, bytes]:
    subkey = hchacha20(key, nonce[:16])
    return ChaCha20Poly1305(subkey), b"\x00" * 4 + nonce[16:]


# ---------------------------------------------------------------------------
# Sealing
# ---------------------------------------------------------------------------

def encrypt_bytes(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt plaintext with XChaCha20-Poly1305 under a fresh nonce.

    Format: [nonce 24B][encrypted_payload + tag 16B]

    Args:
        plaintext: Data to encrypt.
        key: 32-byte key from ``derive_key``.

    Returns:
        Sealed bytes.
    """
    nonce = os.urandom(NONCE_SIZE)
    cipher, inner_nonce = _cipher_for(key, nonce)
    return nonce + cipher.encrypt(inner_nonce, plaintext, None)


def decrypt_bytes(sealed: bytes, key: bytes) -> bytes:
    """Decrypt bytes produced by ``encrypt_bytes``.

    A wrong key and a tampered payload produce the same error.

    Args:
        sealed: Bytes in format [nonce 24B][payload+tag].
        key: 32-byte key from ``derive_key``.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        StorageCodecError: If the payload is truncated or fails authentication.
    """
    if len(sealed) < NONCE_SIZE:
        raise StorageCodecError(
            "encrypted file is too short (missing nonce)"
        )
    nonce = sealed[:NONCE_SIZE]
    cipher, inner_nonce = _cipher_for(key, nonce)
    try:
        return cipher.decrypt(inner_nonce, sealed[NONCE_SIZE:], None)
    except InvalidTag:
        raise StorageCodecError(
            "decryption failed: wrong key or corrupted data"
        ) from None
