"""
Symmetric sealing: AES-CBC with PKCS#7 padding under a per-round session key.
"""
from __future__ import annotations

import base64
import random
import secrets
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from core.schemas.errors import CryptoError


_system_random = secrets.SystemRandom()


def generate_session_key(length: int = 16, rng: Optional[random.Random] = None) -> str:
    """
    Fresh session key as the service's widget builds it.

    Groups of four hex digits, each drawn from 0x1000..0xffff so that no
    group has a leading zero. The key is used as raw ASCII bytes.
    """
    r = rng or _system_random
    groups = (length + 3) // 4
    return "".join(f"{r.randint(0x1000, 0xFFFF):04x}" for _ in range(groups))[:length]


def aes_cbc_encrypt(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    try:
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        return encryptor.update(padded) + encryptor.finalize()
    except ValueError as e:
        raise CryptoError(f"AES-CBC encryption failed: {e}") from e


def aes_cbc_decrypt(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """Inverse of aes_cbc_encrypt; used to check sealed payloads."""
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise CryptoError(f"AES-CBC decryption failed: {e}") from e


def encode_bytes(data: bytes, encoding: str) -> str:
    if encoding == "hex":
        return data.hex()
    if encoding == "base64":
        return base64.b64encode(data).decode("ascii")
    raise CryptoError(f"Unsupported wire encoding: {encoding}")


def decode_bytes(text: str, encoding: str) -> bytes:
    try:
        if encoding == "hex":
            return bytes.fromhex(text)
        if encoding == "base64":
            return base64.b64decode(text, validate=True)
    except ValueError as e:
        raise CryptoError(f"Invalid {encoding} data: {e}") from e
    raise CryptoError(f"Unsupported wire encoding: {encoding}")
