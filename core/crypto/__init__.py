"""
Core cryptographic utilities.

Symmetric sealing, asymmetric key wrapping and proof-of-work, bundled by
CryptoEngine.
"""
from .hashing import (
    HASH_FUNCTIONS,
    get_hash_function,
    hex_digest,
    meets_difficulty,
)
from .symmetric import (
    aes_cbc_decrypt,
    aes_cbc_encrypt,
    decode_bytes,
    encode_bytes,
    generate_session_key,
)
from .asymmetric import load_public_key, rsa_wrap
from .pow import PowSolution, pow_base, solve_pow, solve_pow_async
from .engine import CryptoEngine, SealedPayload

__all__ = [
    "HASH_FUNCTIONS",
    "get_hash_function",
    "hex_digest",
    "meets_difficulty",
    "aes_cbc_encrypt",
    "aes_cbc_decrypt",
    "encode_bytes",
    "decode_bytes",
    "generate_session_key",
    "load_public_key",
    "rsa_wrap",
    "PowSolution",
    "pow_base",
    "solve_pow",
    "solve_pow_async",
    "CryptoEngine",
    "SealedPayload",
]
