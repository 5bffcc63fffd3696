# mcastevents/core/crypto.py

from typing import Optional, Tuple

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from mcastevents.errors import DecryptError

DEFAULT_CIPHER = "aes256"

# cipher id -> key length (bytes); all AES-CBC
CIPHERS = {
    "aes128": 16,
    "aes192": 24,
    "aes256": 32,
    "aes-128-cbc": 16,
    "aes-192-cbc": 24,
    "aes-256-cbc": 32,
}

_BLOCK = algorithms.AES.block_size  # bits


def is_supported_cipher(cipher: str) -> bool:
    return cipher in CIPHERS


def _bytes_to_key(secret: bytes, key_len: int, iv_len: int) -> Tuple[bytes, bytes]:
    """
    OpenSSL EVP_BytesToKey with MD5, one round and no salt.
    Same key schedule as OpenSSL's legacy password-based ciphers.
    """
    derived = b""
    block = b""
    while len(derived) < key_len + iv_len:
        h = hashes.Hash(hashes.MD5())
        h.update(block + secret)
        block = h.finalize()
        derived += block
    return derived[:key_len], derived[key_len:key_len + iv_len]


class CipherBox:
    """
    Symmetric envelope cipher.

    - AES-CBC, PKCS#7 padding
    - Key and IV derived from the shared secret (fixed schedule)
    - Confidentiality only: no integrity or authenticity check

    A box with no secret is a pass-through.
    """

    def __init__(self, secret: Optional[str] = None, cipher: Optional[str] = DEFAULT_CIPHER):
        self.cipher = cipher
        self.enabled = bool(secret) and bool(cipher)
        self._key = None
        self._iv = None

        if self.enabled:
            if cipher not in CIPHERS:
                raise ValueError(f"Unsupported cipher: {cipher}")
            self._key, self._iv = _bytes_to_key(
                secret.encode("utf-8"),
                CIPHERS[cipher],
                _BLOCK // 8,
            )

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(self._iv))

    def encrypt(self, data: bytes) -> bytes:
        if not self.enabled:
            return data

        padder = padding.PKCS7(_BLOCK).padder()
        padded = padder.update(data) + padder.finalize()

        encryptor = self._cipher().encryptor()
        return encryptor.update(padded) + encryptor.finalize()

    def decrypt(self, data: bytes) -> bytes:
        if not self.enabled:
            return data

        if not data or len(data) % (_BLOCK // 8):
            raise DecryptError(f"ciphertext length {len(data)} is not a multiple of the block size")

        decryptor = self._cipher().decryptor()
        padded = decryptor.update(data) + decryptor.finalize()

        unpadder = padding.PKCS7(_BLOCK).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            # Wrong key or corrupted ciphertext
            raise DecryptError("bad padding after decrypt") from exc


def apply_cipher(data: bytes, secret: Optional[str] = None, cipher: Optional[str] = DEFAULT_CIPHER) -> bytes:
    return CipherBox(secret, cipher).encrypt(data)


def remove_cipher(data: bytes, secret: Optional[str] = None, cipher: Optional[str] = DEFAULT_CIPHER) -> bytes:
    return CipherBox(secret, cipher).decrypt(data)
