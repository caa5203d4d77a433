"""
Verification Orchestrator

Drives one Session through load -> solve -> seal -> verify rounds until
the service answers Success or Fail, or the round ceiling is hit.

Key rules:
- The signature document and the seal are rebuilt every round.
- A CryptoError while sealing invalidates the constants version,
  re-acquires constants once and retries the seal; a second one surfaces.
- A Fail classification always surfaces as CaptchaFailed.
- Continue rounds beyond ``max_rounds`` raise RoundLimitExceeded.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from core.constants.store import ConstantStore
from core.crypto.engine import CryptoEngine, SealedPayload
from core.http.geetest import GeetestTransport
from core.schemas.challenge import Challenge, Classification, GeekedResult, VerifyResponse
from core.schemas.constants import ProtocolConstants, WireFormat
from core.schemas.errors import CaptchaFailed, CryptoError, GeekedException, RoundLimitExceeded
from core.signing.signature import RoundState, SignatureBuilder

from solvers.base import AnswerPayload, SolverContext
from solvers.registry import SolverRegistry, get_registry

from orchestrator.session import (
    ContinuationToken,
    OrchestratorState,
    RoundRecord,
    Session,
)


logger = logging.getLogger(__name__)


class VerificationOrchestrator:
    """
    Usage:
        orchestrator = VerificationOrchestrator(store, transport)
        session = Session(captcha_id="...", risk_type=RiskType.SLIDE)
        result = await orchestrator.run(session)
    """

    def __init__(
        self,
        store: ConstantStore,
        transport: GeetestTransport,
        registry: Optional[SolverRegistry] = None,
        *,
        max_rounds: int = 10,
        pow_max_iterations: Optional[int] = None,
        pow_workers: int = 1,
        pow_check_interval: int = 4096,
        load_url: Optional[str] = None,
        verify_url: Optional[str] = None,
        signer: Optional[SignatureBuilder] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if max_rounds < 1:
            raise ValueError(f"max_rounds must be >= 1, got {max_rounds}")
        self.store = store
        self.transport = transport
        self.registry = registry or get_registry()
        self.max_rounds = max_rounds
        self.pow_max_iterations = pow_max_iterations
        self.pow_workers = pow_workers
        self.pow_check_interval = pow_check_interval
        self.load_url = load_url
        self.verify_url = verify_url
        self.signer = signer or SignatureBuilder()
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self, session: Session) -> GeekedResult:
        """
        Run the session to a terminal outcome.

        Every protocol error leaves the session in FAIL; cancellation
        leaves it in the state it had reached.

        Returns:
            The service's seccode on Success.

        Raises:
            CaptchaFailed: The service classified a round as Fail.
            RoundLimitExceeded: Too many Continue rounds.
            SolverUnavailable: No solver for the session's risk type.
            NetworkError, DeobfuscationFailed, CryptoError: Propagated.
        """
        try:
            return await self._run(session)
        except GeekedException as e:
            session.error = e.message
            if not session.finished:
                session.transition(OrchestratorState.FAIL)
            raise

    async def _run(self, session: Session) -> GeekedResult:
        solver = self.registry.get_solver(session.risk_type)

        constants = await self.store.get_current()
        session.transition(OrchestratorState.CONSTANTS_READY)
        logger.debug(
            f"Session {session.captcha_id}/{session.risk_type.value} "
            f"using constants {constants.version}"
        )

        continuation: Optional[ContinuationToken] = None
        crypto_retry_available = True

        while True:
            wire = self._wire(constants)
            challenge = await self.transport.load(
                session.captcha_id,
                session.risk_type,
                session.challenge,
                wire,
                user_info=session.user_info,
                continuation=continuation.as_params() if continuation else None,
            )
            session.transition(OrchestratorState.CHALLENGE_REQUESTED)
            logger.debug(
                f"Round {session.round}: lot_number={challenge.lot_number}, pt={challenge.pt}"
            )

            answer = await solver.produce_answer(challenge, self._solver_context(wire))
            session.transition(OrchestratorState.ANSWER_PRODUCED)

            try:
                sealed = await self._seal(session, challenge, answer, constants)
            except CryptoError as e:
                if not crypto_retry_available:
                    raise
                crypto_retry_available = False
                logger.warning(
                    f"Sealing failed with constants {constants.version}, "
                    f"re-acquiring: {e.message}"
                )
                self.store.invalidate(constants.version)
                constants = await self.store.get_current()
                sealed = await self._seal(session, challenge, answer, constants)
            session.transition(OrchestratorState.PAYLOAD_SEALED)

            response = await self.transport.verify(
                session.captcha_id,
                session.risk_type,
                challenge,
                sealed.w,
                self._wire(constants),
            )
            session.transition(OrchestratorState.SUBMITTED)

            outcome = self._classify(session, challenge, sealed, response)
            if outcome is not None:
                return outcome

            continuation = session.history[-1].continuation
            if session.round >= self.max_rounds:
                raise RoundLimitExceeded(
                    f"No terminal answer after {session.round} rounds",
                    max_rounds=self.max_rounds,
                    details={"captcha_id": session.captcha_id},
                )
            session.next_round()

    def _classify(
        self,
        session: Session,
        challenge: Challenge,
        sealed: SealedPayload,
        response: VerifyResponse,
    ) -> Optional[GeekedResult]:
        """Record the round and apply its classification. None means Continue."""
        classification = response.classification
        continuation = None
        if classification is Classification.CONTINUE:
            continuation = ContinuationToken.from_response(response, challenge)

        session.record(
            RoundRecord(
                round=session.round,
                challenge=challenge,
                sealed=sealed,
                response=response,
                classification=classification,
                continuation=continuation,
            )
        )

        if classification is Classification.SUCCESS:
            session.transition(OrchestratorState.SUCCESS)
            session.result = response.seccode
            logger.info(f"Captcha solved in round {session.round}")
            return response.seccode

        if classification is Classification.CONTINUE:
            session.transition(OrchestratorState.CONTINUE)
            logger.info(f"Round {session.round}: service asked to continue")
            return None

        session.transition(OrchestratorState.FAIL)
        logger.info(f"Round {session.round}: verification failed ({response.failure_message})")
        raise CaptchaFailed(
            response.failure_message,
            details={
                "round": session.round,
                "lot_number": challenge.lot_number,
                "score": response.score,
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _wire(self, constants: ProtocolConstants) -> WireFormat:
        overrides = {}
        if self.load_url:
            overrides["load_url"] = self.load_url
        if self.verify_url:
            overrides["verify_url"] = self.verify_url
        if not overrides:
            return constants.wire
        return constants.wire.model_copy(update=overrides)

    def _solver_context(self, wire: WireFormat) -> SolverContext:
        async def fetch_image(path: str) -> bytes:
            return await self.transport.fetch_image(path, wire)

        return SolverContext(fetch_image=fetch_image, rng=self._rng)

    def _engine(self, constants: ProtocolConstants) -> CryptoEngine:
        return CryptoEngine(
            constants,
            pow_max_iterations=self.pow_max_iterations,
            pow_workers=self.pow_workers,
            pow_check_interval=self.pow_check_interval,
        )

    async def _seal(
        self,
        session: Session,
        challenge: Challenge,
        answer: AnswerPayload,
        constants: ProtocolConstants,
    ) -> SealedPayload:
        engine = self._engine(constants)
        pow_solution = await engine.solve_pow_async(challenge, session.captcha_id)
        logger.debug(
            f"Round {session.round}: PoW nonce {pow_solution.nonce_hex} "
            f"after {pow_solution.iterations} iterations"
        )

        state = RoundState(
            captcha_id=session.captcha_id,
            round=session.round,
            challenge=challenge,
            pow=pow_solution,
            answer=dict(answer.fields),
        )
        document = self.signer.build(state, constants)
        ciphertext, wrapped_key = engine.seal(document, challenge.pt)
        return SealedPayload(
            ciphertext=ciphertext,
            wrapped_key=wrapped_key,
            pow=pow_solution,
            signature=document,
        )
