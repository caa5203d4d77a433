"""
Common test fixtures shared by all modules.

Provides factory functions for the core data structures:
- ProtocolConstants
- Challenge / VerifyResponse payloads
- A synthetic obfuscated script that decodes to known constants
- An RSA keypair and an unseal helper for checking ``w`` end to end
"""

from functools import lru_cache
from typing import Any, Optional
from urllib.parse import quote

from cryptography.hazmat.primitives.asymmetric import padding, rsa

from core.crypto.symmetric import aes_cbc_decrypt, decode_bytes
from core.schemas.challenge import Challenge
from core.schemas.constants import ProtocolConstants, RsaKeyMaterial


# The mapping shape the live script uses.
DEFAULT_MAPPING = '{"(n[13:15]+n[3:5])+.+(n[1:3]+n[26:28])+.+(n[20:27])":"n[13:18]"}'
DEFAULT_LOT_NUMBER = "f4744c44df4541b3be48c5c270ced20b"
DEFAULT_VERSION = "v1.9.3-26b399"
DEFAULT_ABO = {"qDsN": "8Yod", "Tyqf": "pA0o"}


# =============================================================================
# RSA keypair
# =============================================================================

@lru_cache(maxsize=1)
def make_rsa_private_key() -> rsa.RSAPrivateKey:
    """1024-bit test key, generated once per session."""
    return rsa.generate_private_key(public_exponent=65537, key_size=1024)


def make_key_material(private_key: Optional[rsa.RSAPrivateKey] = None) -> RsaKeyMaterial:
    numbers = (private_key or make_rsa_private_key()).public_key().public_numbers()
    return RsaKeyMaterial(modulus=f"{numbers.n:X}", exponent=f"{numbers.e:X}")


# =============================================================================
# ProtocolConstants Factory
# =============================================================================

def make_constants(
    version: str = DEFAULT_VERSION,
    mapping: str = DEFAULT_MAPPING,
    abo: Optional[dict[str, str]] = None,
    device_id: str = "",
    with_test_key: bool = True,
    **overrides: Any,
) -> ProtocolConstants:
    """
    Create a ProtocolConstants for testing.

    Args:
        version: Script version.
        mapping: Lot-number pattern.
        abo: Magic key/value pairs.
        device_id: Device id.
        with_test_key: Use the test RSA key so payloads can be unsealed.
        **overrides: Any other ProtocolConstants field.

    Returns:
        A valid ProtocolConstants instance.
    """
    fields: dict[str, Any] = {
        "version": version,
        "mapping": mapping,
        "abo": dict(DEFAULT_ABO) if abo is None else abo,
        "device_id": device_id,
    }
    if with_test_key:
        fields["public_key"] = make_key_material()
    fields.update(overrides)
    return ProtocolConstants(**fields)


# =============================================================================
# Challenge Factories
# =============================================================================

def make_challenge_data(
    lot_number: str = DEFAULT_LOT_NUMBER,
    pt: str = "1",
    hashfunc: str = "md5",
    bits: int = 4,
    **extra: Any,
) -> dict[str, Any]:
    """Raw ``data`` object of a load response."""
    data: dict[str, Any] = {
        "lot_number": lot_number,
        "payload": f"payload-{lot_number[:6]}",
        "process_token": f"token-{lot_number[:6]}",
        "pt": pt,
        "payload_protocol": 1,
        "pow_detail": {
            "hashfunc": hashfunc,
            "version": "1",
            "bits": bits,
            "datetime": "2026-10-19T10:00:00.000000+08:00",
        },
    }
    data.update(extra)
    return data


def make_challenge(**kwargs: Any) -> Challenge:
    return Challenge.model_validate(make_challenge_data(**kwargs))


def make_gobang_board() -> list[list[int]]:
    """Board whose only move is (1,4) -> (0,3)."""
    return [
        [1, 1, 1, 0, 1],
        [2, 2, 2, 2, 1],
        [3, 3, 3, 3, 3],
        [4, 4, 4, 4, 4],
        [5, 5, 5, 5, 5],
    ]


def make_seccode(lot_number: str = DEFAULT_LOT_NUMBER, captcha_id: str = "test-captcha") -> dict[str, Any]:
    return {
        "captcha_id": captcha_id,
        "lot_number": lot_number,
        "pass_token": "pass-token-abc",
        "gen_time": 1760839200,
        "captcha_output": "captcha-output-xyz",
    }


def make_verify_success(**kwargs: Any) -> dict[str, Any]:
    return {"result": "success", "score": 1, "seccode": make_seccode(**kwargs)}


def make_verify_continue(
    lot_number: str = "a" * 32,
    payload: str = "payload-next",
    process_token: str = "token-next",
) -> dict[str, Any]:
    return {
        "result": "continue",
        "lot_number": lot_number,
        "payload": payload,
        "process_token": process_token,
        "payload_protocol": 1,
    }


def make_verify_fail(result: str = "fail") -> dict[str, Any]:
    return {"result": result, "score": 0}


# =============================================================================
# Obfuscated Script Factory
# =============================================================================

SCRIPT_XOR_KEY = "k3yG33k"
SCRIPT_TABLE = ["unused", "_lib", "_abo", "options", "deviceId", "setPublic"]


def encrypt_table(entries: list[str], key: str = SCRIPT_XOR_KEY) -> str:
    """Inverse of the decoder's table step: XOR with the key, then percent-encode."""
    plain = "^".join(entries)
    key_bytes = key.encode("utf-8")
    xored = "".join(chr(ord(c) ^ key_bytes[i % len(key_bytes)]) for i, c in enumerate(plain))
    return quote(xored, safe="")


def make_script(
    abo: Optional[dict[str, str]] = None,
    mapping: str = DEFAULT_MAPPING,
    device_id: Optional[str] = "dev-123",
    public_key: Optional[RsaKeyMaterial] = None,
    include_table: bool = True,
    include_abo: bool = True,
    include_mapping: bool = True,
) -> str:
    """
    Build a small script with the same call-site structure as the live one.

    Identifiers are reached through a ``_x1a2(n)`` lookup into an XOR'd,
    percent-encoded string table, like the real bundle.
    """
    abo = dict(DEFAULT_ABO) if abo is None else abo
    abo_literal = ",".join(f"'{k}':'{v}'" for k, v in abo.items())

    lines = []
    if include_table:
        lines.append(
            '!function(){var t=decodeURI("' + encrypt_table(SCRIPT_TABLE) + '");'
            'function f(){return t.split("^")}}}}("' + SCRIPT_XOR_KEY + '")};'
        )
    lines.append("var e={},r={};")
    if include_abo:
        lines.append("e[_x1a2(1)]={" + abo_literal + "},e[_x1a2(0)]=1;")
    if include_mapping:
        lines.append("e[_x1a2(2)]=function(){return " + mapping + "}();")
    if device_id is not None:
        lines.append("e[_x1a2(3)][_x1a2(4)]='" + device_id + "';")
    if public_key is not None:
        lines.append(
            "r[_x1a2(5)]('" + public_key.modulus + "','" + public_key.exponent + "');"
        )
    return "\n".join(lines)


# =============================================================================
# Unsealing
# =============================================================================

def open_sealed(
    ciphertext: str,
    wrapped_key: str,
    private_key: Optional[rsa.RSAPrivateKey] = None,
    iv: str = "0000000000000000",
    encoding: str = "hex",
) -> tuple[str, str]:
    """
    Reverse a pt=1 seal with the test private key.

    Returns:
        ``(session_key, plaintext_document)``
    """
    key = private_key or make_rsa_private_key()
    session_key = key.decrypt(decode_bytes(wrapped_key, encoding), padding.PKCS1v15())
    plaintext = aes_cbc_decrypt(decode_bytes(ciphertext, encoding), session_key, iv.encode("ascii"))
    return session_key.decode("ascii"), plaintext.decode("utf-8")


def split_w(w: str, key_hex_length: int = 256) -> tuple[str, str]:
    """Split a pt=1 ``w`` into ciphertext and wrapped key (1024-bit key by default)."""
    return w[:-key_hex_length], w[-key_hex_length:]
