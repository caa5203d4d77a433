"""
Verification Orchestrator Unit Tests
Tests for orchestrator/{session,verification}.py

The service is replaced by FakeTransport and the constants store by
FakeStore, so every round runs the real solver, PoW, signature and seal.
"""
import asyncio
import json

import pytest

from core.crypto.hashing import meets_difficulty
from core.schemas.challenge import Challenge, RiskType, VerifyResponse
from core.schemas.constants import RsaKeyMaterial
from core.schemas.errors import (
    CaptchaFailed,
    CryptoError,
    DeobfuscationFailed,
    NetworkError,
    PowExhausted,
    RoundLimitExceeded,
    SolverUnavailable,
)
from orchestrator.session import ContinuationToken, OrchestratorState, Session
from orchestrator.verification import VerificationOrchestrator

from fixtures.common import (
    make_challenge,
    make_challenge_data,
    make_constants,
    make_gobang_board,
    make_verify_continue,
    make_verify_fail,
    make_verify_success,
    open_sealed,
    split_w,
)
from fixtures.fake_service import FakeStore, FakeTransport


SECOND_LOT = "a" * 32


def gobang_challenge(lot_number="f4744c44df4541b3be48c5c270ced20b", **kwargs):
    return make_challenge_data(lot_number=lot_number, ques=make_gobang_board(), **kwargs)


def make_session(risk_type=RiskType.GOBANG, **kwargs):
    return Session(captcha_id="test-captcha", risk_type=risk_type, **kwargs)


def unseal(w):
    _, plaintext = open_sealed(*split_w(w))
    return json.loads(plaintext)


def bad_key_constants(version="v-bad"):
    return make_constants(version=version, public_key=RsaKeyMaterial(modulus="0F", exponent="10001"))


class TestSingleRound:
    """Tests for a run that succeeds in one round."""

    async def test_success(self):
        transport = FakeTransport(challenges=[gobang_challenge()])
        session = make_session(user_info="account:1")

        result = await VerificationOrchestrator(FakeStore(), transport).run(session)

        assert result.pass_token == "pass-token-abc"
        assert session.result == result
        assert session.finished
        assert session.error is None
        assert session.states == [
            OrchestratorState.INIT,
            OrchestratorState.CONSTANTS_READY,
            OrchestratorState.CHALLENGE_REQUESTED,
            OrchestratorState.ANSWER_PRODUCED,
            OrchestratorState.PAYLOAD_SEALED,
            OrchestratorState.SUBMITTED,
            OrchestratorState.SUCCESS,
        ]
        assert transport.load_calls[0]["user_info"] == "account:1"
        assert transport.load_calls[0]["challenge"] == session.challenge
        assert transport.load_calls[0]["continuation"] is None

    async def test_w_carries_answer_and_pow(self):
        """Test the submitted w opens to a document with the answer and a valid PoW."""
        transport = FakeTransport(challenges=[gobang_challenge(bits=8)])
        await VerificationOrchestrator(FakeStore(), transport).run(make_session())

        document = unseal(transport.verify_calls[0]["w"])
        assert document["userresponse"] == [[1, 4], [0, 3]]
        assert document["lot_number"] == "f4744c44df4541b3be48c5c270ced20b"
        assert meets_difficulty(document["pow_sign"], 8)
        assert "|test-captcha|f4744c44df4541b3be48c5c270ced20b||" in document["pow_msg"]

    async def test_plain_pt(self):
        """Test pt=0 submits the URL-encoded document."""
        transport = FakeTransport(challenges=[make_challenge_data(pt="0")])
        await VerificationOrchestrator(FakeStore(), transport).run(make_session(RiskType.AI))

        w = transport.verify_calls[0]["w"]
        assert w.startswith("%7B")

    async def test_record(self):
        session = make_session()
        await VerificationOrchestrator(FakeStore(), FakeTransport(challenges=[gobang_challenge()])).run(session)

        record = session.last_round
        assert record.round == 1
        assert record.classification.value == "success"
        assert record.continuation is None
        assert session.to_dict()["history"][0]["lot_number"] == "f4744c44df4541b3be48c5c270ced20b"


class TestContinue:
    """Tests for the Continue loop."""

    async def test_continue_then_success(self):
        transport = FakeTransport(
            challenges=[gobang_challenge(), gobang_challenge(lot_number=SECOND_LOT)],
            verify_results=[make_verify_continue(lot_number=SECOND_LOT), make_verify_success(lot_number=SECOND_LOT)],
        )
        session = make_session()

        result = await VerificationOrchestrator(FakeStore(), transport).run(session)

        assert result.lot_number == SECOND_LOT
        assert session.round == 2
        assert len(session.history) == 2
        assert session.states.count(OrchestratorState.CONTINUE) == 1
        assert transport.load_calls[1]["continuation"] == {
            "lot_number": SECOND_LOT,
            "payload": "payload-next",
            "process_token": "token-next",
            "payload_protocol": "1",
            "pt": "1",
        }
        assert transport.load_calls[1]["challenge"] == transport.load_calls[0]["challenge"]

    async def test_document_rebuilt_each_round(self):
        transport = FakeTransport(
            challenges=[gobang_challenge(), gobang_challenge(lot_number=SECOND_LOT)],
            verify_results=[make_verify_continue(), make_verify_success()],
        )
        await VerificationOrchestrator(FakeStore(), transport).run(make_session())

        first, second = (unseal(c["w"]) for c in transport.verify_calls)
        assert first["lot_number"] != second["lot_number"]
        assert first["pow_msg"] != second["pow_msg"]

    async def test_round_limit(self):
        transport = FakeTransport(
            challenges=[make_challenge_data()],
            verify_results=[make_verify_continue()],
        )
        session = make_session(RiskType.AI)

        with pytest.raises(RoundLimitExceeded) as exc:
            await VerificationOrchestrator(FakeStore(), transport, max_rounds=3).run(session)

        assert exc.value.details["max_rounds"] == 3
        assert len(session.history) == 3
        assert len(transport.load_calls) == 3
        assert session.error is not None
        assert session.finished
        assert session.state is OrchestratorState.FAIL
        assert session.states[-2] is OrchestratorState.CONTINUE

    def test_continuation_falls_back_to_previous(self):
        previous = make_challenge(pt="0")
        response = VerifyResponse.model_validate({"result": "continue", "lot_number": "new"})
        token = ContinuationToken.from_response(response, previous)

        assert token.lot_number == "new"
        assert token.payload == previous.payload
        assert token.process_token == previous.process_token
        assert token.pt == "0"


class TestFailures:
    """Tests for error paths."""

    async def test_fail_raises_captcha_failed(self):
        transport = FakeTransport(verify_results=[make_verify_fail("invalid answer")])
        session = make_session(RiskType.AI)

        with pytest.raises(CaptchaFailed) as exc:
            await VerificationOrchestrator(FakeStore(), transport).run(session)

        assert exc.value.message == "invalid answer"
        assert exc.value.details["round"] == 1
        assert session.state is OrchestratorState.FAIL
        assert len(session.history) == 1

    async def test_fail_never_retried(self):
        transport = FakeTransport(verify_results=[make_verify_fail(), make_verify_success()])
        with pytest.raises(CaptchaFailed):
            await VerificationOrchestrator(FakeStore(), transport).run(make_session(RiskType.AI))
        assert len(transport.verify_calls) == 1

    async def test_solver_unavailable_before_network(self):
        store = FakeStore()
        transport = FakeTransport()
        with pytest.raises(SolverUnavailable):
            await VerificationOrchestrator(store, transport).run(make_session(RiskType.ICON))
        assert store.get_calls == 0
        assert transport.load_calls == []

    async def test_solver_error_surfaces(self):
        """Test an unsolvable board fails the session without a submit."""
        transport = FakeTransport(challenges=[make_challenge_data(ques=[[1, 2], [3, 4]])])
        with pytest.raises(CaptchaFailed):
            await VerificationOrchestrator(FakeStore(), transport).run(make_session())
        assert transport.verify_calls == []


class TestCryptoRecovery:
    """Tests for re-acquiring constants after a CryptoError."""

    async def test_reacquires_once(self):
        store = FakeStore(bad_key_constants(), make_constants(version="v-good"))
        transport = FakeTransport()

        await VerificationOrchestrator(store, transport).run(make_session(RiskType.AI))

        assert store.invalidated == ["v-bad"]
        assert store.get_calls == 2
        assert len(transport.verify_calls) == 1
        assert unseal(transport.verify_calls[0]["w"])["lot_number"]

    async def test_second_failure_surfaces(self):
        store = FakeStore(bad_key_constants("v-bad-1"), bad_key_constants("v-bad-2"))
        transport = FakeTransport()
        session = make_session(RiskType.AI)

        with pytest.raises(CryptoError):
            await VerificationOrchestrator(store, transport).run(session)

        assert store.invalidated == ["v-bad-1"]
        assert transport.verify_calls == []
        assert session.error

    async def test_sm2_surfaces(self):
        transport = FakeTransport(challenges=[make_challenge_data(pt="2")])
        with pytest.raises(CryptoError) as exc:
            await VerificationOrchestrator(FakeStore(), transport).run(make_session(RiskType.AI))
        assert "SM2" in exc.value.message


class TestConfiguration:
    """Tests for orchestrator options."""

    def test_max_rounds_validated(self):
        with pytest.raises(ValueError):
            VerificationOrchestrator(FakeStore(), FakeTransport(), max_rounds=0)

    async def test_url_overrides(self):
        transport = FakeTransport()
        orchestrator = VerificationOrchestrator(
            FakeStore(), transport,
            load_url="https://mirror.example/load",
            verify_url="https://mirror.example/verify",
        )
        await orchestrator.run(make_session(RiskType.AI))

        assert transport.load_calls[0]["wire"].load_url == "https://mirror.example/load"
        assert transport.verify_calls[0]["wire"].verify_url == "https://mirror.example/verify"

    async def test_pow_workers(self):
        transport = FakeTransport(challenges=[make_challenge_data(bits=8)])
        await VerificationOrchestrator(FakeStore(), transport, pow_workers=3).run(make_session(RiskType.AI))
        assert meets_difficulty(unseal(transport.verify_calls[0]["w"])["pow_sign"], 8)


class HangingTransport(FakeTransport):
    async def load(self, *args, **kwargs) -> Challenge:
        await asyncio.sleep(3600)
        raise AssertionError("unreachable")


class TestCancellation:
    async def test_cancel_mid_round(self):
        session = make_session(RiskType.AI)
        task = asyncio.ensure_future(
            VerificationOrchestrator(FakeStore(), HangingTransport()).run(session)
        )
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert session.state is OrchestratorState.CONSTANTS_READY
        assert session.history == []


class TestSession:
    def test_transition_after_terminal(self):
        session = make_session()
        session.transition(OrchestratorState.SUCCESS)
        with pytest.raises(RuntimeError):
            session.transition(OrchestratorState.CONTINUE)


class FailingStore(FakeStore):
    """Store whose get_current() always raises ``error``."""

    def __init__(self, error):
        super().__init__()
        self.error = error

    async def get_current(self):
        self.get_calls += 1
        raise self.error


class TestTerminalState:
    """Every protocol error leaves the session finished in FAIL."""

    @pytest.mark.parametrize(
        "error",
        [
            DeobfuscationFailed("no string table", marker="decodeURI"),
            NetworkError("HTTP 503", status_code=503),
        ],
        ids=["deobfuscation", "network"],
    )
    async def test_constants_unavailable(self, error):
        session = make_session(RiskType.AI)
        transport = FakeTransport()

        with pytest.raises(type(error)):
            await VerificationOrchestrator(FailingStore(error), transport).run(session)

        assert session.finished
        assert session.states == [OrchestratorState.INIT, OrchestratorState.FAIL]
        assert transport.load_calls == []

    async def test_solver_unavailable(self):
        session = make_session(RiskType.ICON)
        with pytest.raises(SolverUnavailable):
            await VerificationOrchestrator(FakeStore(), FakeTransport()).run(session)
        assert session.state is OrchestratorState.FAIL

    async def test_solver_error(self):
        session = make_session()
        transport = FakeTransport(challenges=[make_challenge_data(ques=[[1, 2], [3, 4]])])
        with pytest.raises(CaptchaFailed):
            await VerificationOrchestrator(FakeStore(), transport).run(session)
        assert session.finished
        assert session.state is OrchestratorState.FAIL

    async def test_pow_exhausted(self):
        session = make_session(RiskType.AI)
        transport = FakeTransport(challenges=[make_challenge_data(bits=32)])
        with pytest.raises(PowExhausted):
            await VerificationOrchestrator(FakeStore(), transport, pow_max_iterations=1).run(session)
        assert session.finished
        assert session.states[-2] is OrchestratorState.ANSWER_PRODUCED
        assert transport.verify_calls == []

    async def test_crypto_error(self):
        session = make_session(RiskType.AI)
        transport = FakeTransport(challenges=[make_challenge_data(pt="2")])
        with pytest.raises(CryptoError):
            await VerificationOrchestrator(FakeStore(), transport).run(session)
        assert session.state is OrchestratorState.FAIL
