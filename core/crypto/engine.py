"""
Crypto Engine

Seal, key-wrap and proof-of-work primitives bound to one ProtocolConstants
snapshot. The engine holds no per-round state; a new session key is drawn
for every seal.
"""
from __future__ import annotations

import random
import threading
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from core.schemas.challenge import Challenge
from core.schemas.constants import ProtocolConstants
from core.schemas.errors import CryptoError

from .asymmetric import rsa_wrap
from .pow import PowSolution, pow_base, solve_pow, solve_pow_async
from .symmetric import aes_cbc_encrypt, encode_bytes, generate_session_key


# pt values: how the service expects ``w`` to be protected.
PT_PLAIN = ("", "0")
PT_AES_RSA = "1"
PT_SM2 = "2"


@dataclass(frozen=True)
class SealedPayload:
    """
    Output of one round's sealing step.

    Consumed exactly once by the submit call.
    """
    ciphertext: str
    wrapped_key: str
    pow: PowSolution
    signature: str

    @property
    def w(self) -> str:
        """Wire value: ciphertext followed by the wrapped session key."""
        return self.ciphertext + self.wrapped_key


class CryptoEngine:
    """
    Usage:
        engine = CryptoEngine(constants)
        solution = await engine.solve_pow_async(challenge, captcha_id)
        ciphertext, wrapped_key = engine.seal(document, challenge.pt)
    """

    def __init__(
        self,
        constants: ProtocolConstants,
        *,
        pow_max_iterations: Optional[int] = None,
        pow_workers: int = 1,
        pow_check_interval: int = 4096,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.constants = constants
        self.pow_max_iterations = pow_max_iterations or constants.pow.max_iterations
        self.pow_workers = pow_workers
        self.pow_check_interval = pow_check_interval
        self._rng = rng

    # ------------------------------------------------------------------
    # Symmetric seal + asymmetric wrap
    # ------------------------------------------------------------------

    def new_session_key(self) -> str:
        return generate_session_key(self.constants.cipher.key_length, self._rng)

    def wrap_key(self, key: str) -> str:
        """Encrypt a session key under the service public key."""
        wrapped = rsa_wrap(key.encode("ascii"), self.constants.public_key)
        return encode_bytes(wrapped, self.constants.cipher.encoding)

    def encrypt(self, plaintext: str, key: str) -> str:
        cipher = self.constants.cipher
        iv = cipher.iv.encode("ascii")
        if len(iv) != 16:
            raise CryptoError(f"IV must be 16 bytes, got {len(iv)}")
        raw = aes_cbc_encrypt(plaintext.encode("utf-8"), key.encode("ascii"), iv)
        return encode_bytes(raw, cipher.encoding)

    def seal(self, document: str, pt: str) -> tuple[str, str]:
        """
        Protect a signature document according to ``pt``.

        Returns:
            ``(ciphertext, wrapped_key)``; ``wrapped_key`` is empty for the
            plaintext mode.

        Raises:
            CryptoError: For SM2 (``pt == "2"``), unknown modes, or a
                constant set whose key material cannot be used.
        """
        pt = (pt or "").strip()
        if pt in PT_PLAIN:
            return quote(document, safe=""), ""
        if pt == PT_AES_RSA:
            key = self.new_session_key()
            return self.encrypt(document, key), self.wrap_key(key)
        if pt == PT_SM2:
            raise CryptoError("Encryption type 2 (SM2) is not implemented", details={"pt": pt})
        raise CryptoError(f"Unknown encryption type: {pt}", details={"pt": pt})

    # ------------------------------------------------------------------
    # Proof of work
    # ------------------------------------------------------------------

    def _pow_args(self, challenge: Challenge, captcha_id: str) -> tuple[str, str, int]:
        detail = challenge.pow_detail
        if detail.hashfunc.lower() not in self.constants.pow.hash_functions:
            raise CryptoError(
                f"Hash function {detail.hashfunc!r} not allowed by constants "
                f"{self.constants.version}",
            )
        base = pow_base(
            detail.version,
            detail.bits,
            detail.hashfunc,
            detail.datetime,
            captcha_id,
            challenge.lot_number,
        )
        return base, detail.hashfunc, detail.bits

    def solve_pow(
        self,
        challenge: Challenge,
        captcha_id: str,
        cancel: Optional[threading.Event] = None,
    ) -> PowSolution:
        base, hashfunc, bits = self._pow_args(challenge, captcha_id)
        return solve_pow(
            base, hashfunc, bits,
            max_iterations=self.pow_max_iterations,
            workers=self.pow_workers,
            nonce_width=self.constants.pow.nonce_width,
            cancel=cancel,
            check_interval=self.pow_check_interval,
        )

    async def solve_pow_async(self, challenge: Challenge, captcha_id: str) -> PowSolution:
        base, hashfunc, bits = self._pow_args(challenge, captcha_id)
        return await solve_pow_async(
            base, hashfunc, bits,
            max_iterations=self.pow_max_iterations,
            workers=self.pow_workers,
            nonce_width=self.constants.pow.nonce_width,
            check_interval=self.pow_check_interval,
        )
