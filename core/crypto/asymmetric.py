"""
Asymmetric key wrapping: RSA PKCS#1 v1.5 under the service's public key.
"""
from __future__ import annotations

from functools import lru_cache

from cryptography.hazmat.primitives.asymmetric import padding, rsa

from core.schemas.constants import RsaKeyMaterial
from core.schemas.errors import CryptoError


@lru_cache(maxsize=8)
def _public_key(modulus: str, exponent: str) -> rsa.RSAPublicKey:
    try:
        return rsa.RSAPublicNumbers(int(exponent, 16), int(modulus, 16)).public_key()
    except ValueError as e:
        raise CryptoError(f"Invalid RSA public key: {e}") from e


def load_public_key(material: RsaKeyMaterial) -> rsa.RSAPublicKey:
    """Build (and memoize) the public key object for a key material record."""
    if material.padding.upper() not in ("PKCS1V15", "PKCS1"):
        raise CryptoError(f"Unsupported key wrap padding: {material.padding}")
    return _public_key(material.modulus, material.exponent)


def rsa_wrap(data: bytes, material: RsaKeyMaterial) -> bytes:
    """
    Encrypt ``data`` with PKCS#1 v1.5 padding.

    Output length equals the modulus length in bytes; PKCS#1 v1.5 is
    randomized so two wraps of the same key differ.
    """
    key = load_public_key(material)
    try:
        return key.encrypt(data, padding.PKCS1v15())
    except ValueError as e:
        raise CryptoError(f"RSA key wrap failed: {e}") from e
