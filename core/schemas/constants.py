"""
Module 01 - Schemas
File: constants.py

Purpose: Versioned protocol constants and their persisted cache record.

Everything the client needs to speak one release of the service's script
lives in ProtocolConstants. Models are frozen so that snapshots handed out
by the constant store can be shared across concurrent sessions.
All models ignore unknown fields so that a cache written by a newer build
still reads.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import CryptoError
from .versioning import CACHE_FORMAT_VERSION


# Public key published by the service for session key wrapping (RSA-1024).
DEFAULT_RSA_MODULUS = (
    "00C1E3934D1614465B33053E7F48EE4EC87B14B95EF88947713D25EECBFF7E74"
    "C7977D02DC1D9451F79DD5D1C10C29ACB6A9B4D6FB7D0A0279B6719E1772565F"
    "09AF627715919221AEF91899CAE08C0D686D748B20A3603BE2318CA6BC2B5970"
    "6592A9219D0BF05C9F65023A21D2330807252AE0066D59CEEFA5F2748EA80BAB81"
)
DEFAULT_RSA_EXPONENT = "10001"

SUPPORTED_HASH_FUNCTIONS = ("md5", "sha1", "sha256")

_FROZEN = ConfigDict(extra="ignore", frozen=True)


class RsaKeyMaterial(BaseModel):
    """Public key used to wrap the per-round session key."""

    model_config = _FROZEN

    modulus: str = Field(
        default=DEFAULT_RSA_MODULUS,
        description="Hex-encoded RSA modulus",
        min_length=2,
    )
    exponent: str = Field(
        default=DEFAULT_RSA_EXPONENT,
        description="Hex-encoded RSA public exponent",
        min_length=1,
    )
    padding: str = Field(
        default="PKCS1v15",
        description="Padding scheme for key wrapping",
    )

    @field_validator("modulus", "exponent")
    @classmethod
    def validate_hex(cls, v: str) -> str:
        try:
            int(v, 16)
        except ValueError:
            raise ValueError(f"not a hex integer: {v[:16]!r}")
        return v

    @property
    def n(self) -> int:
        return int(self.modulus, 16)

    @property
    def e(self) -> int:
        return int(self.exponent, 16)

    @property
    def key_size(self) -> int:
        """Modulus size in bits."""
        return self.n.bit_length()


class CipherParams(BaseModel):
    """Symmetric sealing parameters."""

    model_config = _FROZEN

    algorithm: str = Field(default="AES-CBC", description="Block cipher and mode")
    iv: str = Field(
        default="0000000000000000",
        description="Initialization vector as an ASCII string",
    )
    key_length: int = Field(default=16, description="Session key length in bytes")
    encoding: str = Field(default="hex", description="Wire encoding of binary output")

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        if v.upper() != "AES-CBC":
            raise ValueError(f"unsupported cipher: {v}")
        return v.upper()

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        if v not in ("hex", "base64"):
            raise ValueError(f"unsupported encoding: {v}")
        return v

    @field_validator("key_length")
    @classmethod
    def validate_key_length(cls, v: int) -> int:
        if v not in (16, 24, 32):
            raise ValueError(f"invalid AES key length: {v}")
        return v


class PowParams(BaseModel):
    """Proof-of-work algorithm parameters."""

    model_config = _FROZEN

    hash_functions: tuple[str, ...] = Field(
        default=SUPPORTED_HASH_FUNCTIONS,
        description="Hash function names the service may request",
    )
    max_iterations: int = Field(
        default=1 << 24,
        description="Nonce search ceiling",
        gt=0,
    )
    nonce_width: int = Field(
        default=16,
        description="Hex digits in the nonce suffix",
        ge=1,
    )


class EnvelopeFields(BaseModel):
    """Fixed fields of the signature document."""

    model_config = _FROZEN

    geetest: str = "captcha"
    lang: str = "zh"
    ep: str = "123"
    biht: str = "1426265548"
    em: dict[str, Any] = Field(
        default_factory=lambda: {
            "cp": 0, "ek": "11", "nt": 0, "ph": 0, "sc": 0, "si": 0, "wd": 1,
        },
    )
    gee_guard: dict[str, Any] = Field(
        default_factory=lambda: {
            "roe": {
                "auh": "3", "aup": "3", "cdc": "3", "egp": "3",
                "res": "3", "rew": "3", "sep": "3", "snh": "3",
            },
        },
    )

    def as_document(self) -> dict[str, Any]:
        return {
            "geetest": self.geetest,
            "lang": self.lang,
            "ep": self.ep,
            "biht": self.biht,
        }


class WireFormat(BaseModel):
    """Endpoints and request conventions of the service."""

    model_config = _FROZEN

    load_url: str = "https://gcaptcha4.geevisit.com/load"
    verify_url: str = "https://gcaptcha4.geevisit.com/verify"
    image_host: str = "https://static.geetest.com"
    script_host: str = "https://static.geevisit.com"
    script_path: str = "/js/gcaptcha4.js"
    client_type: str = "web"
    lang: str = "eng"
    callback_prefix: str = "geetest_"
    payload_protocol: str = "1"


class ProtocolConstants(BaseModel):
    """
    Immutable snapshot of everything extracted from one script version.

    A constant set is only ever built whole: the decoder validates every
    required marker before constructing one, and a mapping the lot parser
    cannot read is rejected here, so a corrupt cache entry reads as a miss.
    """

    model_config = _FROZEN

    version: str = Field(
        ...,
        description="Service-declared script version",
        min_length=1,
    )
    mapping: str = Field(
        ...,
        description="Lot-number derivation pattern",
        min_length=1,
    )
    abo: dict[str, str] = Field(
        default_factory=dict,
        description="Magic key/value pairs merged into every signature document",
    )
    device_id: str = Field(
        default="",
        description="Device identifier baked into the script (may be empty)",
    )
    public_key: RsaKeyMaterial = Field(default_factory=RsaKeyMaterial)
    cipher: CipherParams = Field(default_factory=CipherParams)
    pow: PowParams = Field(default_factory=PowParams)
    envelope: EnvelopeFields = Field(default_factory=EnvelopeFields)
    wire: WireFormat = Field(default_factory=WireFormat)

    @field_validator("mapping")
    @classmethod
    def validate_mapping(cls, v: str) -> str:
        from core.signing.lot_parser import get_lot_parser

        try:
            get_lot_parser(v)
        except CryptoError as e:
            raise ValueError(e.message) from e
        return v


class ScriptVersion(BaseModel):
    """Result of the lightweight version probe."""

    model_config = _FROZEN

    version: str = Field(..., min_length=1)
    static_path: str = Field(..., description="Path prefix of the script bundle")


class ConstantsCacheEntry(BaseModel):
    """
    Persisted record for one script version.

    Entries are replaced atomically, never edited in place. Invalidation
    rewrites the entry with ``invalidated`` set rather than deleting it.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    format_version: int = Field(default=CACHE_FORMAT_VERSION)
    version: str = Field(..., min_length=1)
    constants: ProtocolConstants
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    invalidated: bool = False

    @property
    def is_valid(self) -> bool:
        return not self.invalidated and self.constants.version == self.version
