"""
Module 01 - Schemas
File: challenge.py

Purpose: Wire models for the challenge (load) and submit (verify) exchanges.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RiskType(str, Enum):
    """Closed set of challenge types the service issues."""

    SLIDE = "slide"
    GOBANG = "gobang"
    ICON = "icon"
    AI = "ai"

    @classmethod
    def parse(cls, value: "str | RiskType") -> "RiskType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(r.value for r in cls)
            raise ValueError(f"Unknown risk type {value!r} (expected one of: {allowed})")


class Classification(str, Enum):
    """Raw classification of a verify response."""

    SUCCESS = "success"
    CONTINUE = "continue"
    FAIL = "fail"


def _to_str(v: Any) -> Any:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return str(v)
    return v


class PowDetail(BaseModel):
    """Proof-of-work parameters issued with a challenge."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    hashfunc: str = Field(default="md5")
    version: str = Field(default="1")
    bits: int = Field(default=0, ge=0)
    datetime: str = Field(default="")

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> Any:
        return _to_str(v)


class Challenge(BaseModel):
    """
    Challenge data returned by the ``load`` endpoint.

    Type-specific fields (``slice``, ``bg``, ``ques``, ``imgs``) are optional
    and unknown fields are kept so solvers can read anything new the
    service starts sending.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    lot_number: str = Field(..., min_length=1)
    payload: str = Field(default="")
    process_token: str = Field(default="")
    pt: str = Field(default="1")
    payload_protocol: str = Field(default="1")
    pow_detail: PowDetail = Field(default_factory=PowDetail)
    captcha_type: str | None = None
    slice: str | None = None
    bg: str | None = None
    ques: Any = None
    imgs: str | None = None

    @field_validator("pt", "payload_protocol", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> Any:
        return _to_str(v)

    def extra_field(self, name: str, default: Any = None) -> Any:
        """Read a field the model does not declare."""
        return (self.model_extra or {}).get(name, default)


class GeekedResult(BaseModel):
    """Caller-facing success artifact (the service's ``seccode``)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    captcha_id: str
    lot_number: str
    pass_token: str
    gen_time: str
    captcha_output: str

    @field_validator("gen_time", mode="before")
    @classmethod
    def coerce_gen_time(cls, v: Any) -> Any:
        return _to_str(v)


class VerifyResponse(BaseModel):
    """Data returned by the ``verify`` endpoint."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    seccode: GeekedResult | None = None
    result: str | None = None
    score: str | None = None
    payload: str | None = None
    process_token: str | None = None
    payload_protocol: str | None = None
    lot_number: str | None = None

    @field_validator("score", "payload_protocol", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> Any:
        return _to_str(v)

    @property
    def classification(self) -> Classification:
        if self.seccode is not None:
            return Classification.SUCCESS
        if self.result == "continue":
            return Classification.CONTINUE
        return Classification.FAIL

    @property
    def failure_message(self) -> str:
        return self.result or "Unknown verification error"
