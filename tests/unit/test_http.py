"""
HTTP Unit Tests
Tests for core/http/{client,geetest}.py

Tests:
- Bounded retries on transport errors and 429/5xx
- Non-retryable statuses surface at once
- JSONP unwrapping
- Transport request parameters (load, continuation, verify)
"""
import json

import httpx
import pytest

from core.http.client import AsyncHttpClient
from core.http.geetest import GeetestTransport, parse_jsonp, random_callback, version_from_static_path
from core.schemas.challenge import RiskType
from core.schemas.constants import WireFormat
from core.schemas.errors import InvalidResponse, NetworkError

from fixtures.common import make_challenge, make_challenge_data, make_verify_success
from fixtures.fake_service import FakeGeetest


class Flaky:
    """Handler failing ``failures`` times before answering 200."""

    def __init__(self, failures, status=503, exc=None):
        self.failures = failures
        self.status = status
        self.exc = exc
        self.calls = 0

    def __call__(self, request):
        self.calls += 1
        if self.calls <= self.failures:
            if self.exc is not None:
                raise self.exc
            return httpx.Response(self.status, text="busy")
        return httpx.Response(200, text="ok")


def make_client(handler, max_retries=2):
    return AsyncHttpClient(
        transport=httpx.MockTransport(handler),
        max_retries=max_retries,
        retry_delay=0.0,
    )


class TestAsyncHttpClient:
    """Tests for AsyncHttpClient retries."""

    async def test_retries_server_errors(self):
        handler = Flaky(failures=2)
        async with make_client(handler) as client:
            response = await client.get("https://example.com/x")
        assert response.text == "ok"
        assert handler.calls == 3

    async def test_retries_transport_errors(self):
        handler = Flaky(failures=1, exc=httpx.ConnectError("refused"))
        async with make_client(handler) as client:
            response = await client.get("https://example.com/x")
        assert response.ok
        assert handler.calls == 2

    async def test_gives_up_after_bound(self):
        handler = Flaky(failures=10, status=502)
        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(NetworkError) as exc:
                await client.get("https://example.com/x")
        assert exc.value.status_code == 502
        assert exc.value.retryable
        assert handler.calls == 3

    async def test_client_error_not_retried(self):
        handler = Flaky(failures=10, status=404)
        async with make_client(handler) as client:
            with pytest.raises(NetworkError) as exc:
                await client.get("https://example.com/x")
        assert exc.value.status_code == 404
        assert handler.calls == 1

    async def test_elapsed_with_preloaded_response(self):
        """Test responses built in memory (body already read) still report timing."""
        async with make_client(lambda request: httpx.Response(200, text="ok")) as client:
            response = await client.get("https://example.com/x")
        assert response.elapsed_ms >= 0.0
        assert response.text == "ok"

    async def test_default_headers_sent(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200)

        client = AsyncHttpClient(
            transport=httpx.MockTransport(handler),
            default_headers={"User-Agent": "geeked-test"},
        )
        await client.get("https://example.com/")
        await client.aclose()
        assert seen["user-agent"] == "geeked-test"


class TestParseJsonp:
    """Tests for parse_jsonp()."""

    def test_unwraps_data(self):
        text = 'geetest_1({"status": "success", "data": {"a": 1}})'
        assert parse_jsonp(text, "geetest_1") == {"a": 1}

    def test_trailing_semicolon(self):
        text = 'cb({"status": "success", "data": {}});\n'
        assert parse_jsonp(text, "cb") == {}

    def test_wrong_callback(self):
        with pytest.raises(InvalidResponse):
            parse_jsonp('other({"status": "success", "data": {}})', "cb")

    def test_error_status(self):
        text = 'cb({"status": "error", "code": "-50101", "msg": "param illegal"})'
        with pytest.raises(InvalidResponse) as exc:
            parse_jsonp(text, "cb")
        assert exc.value.details["code"] == "-50101"

    def test_not_json(self):
        with pytest.raises(InvalidResponse):
            parse_jsonp("cb(not json)", "cb")

    def test_unterminated(self):
        with pytest.raises(InvalidResponse):
            parse_jsonp('cb({"status": "success"', "cb")

    def test_missing_data(self):
        with pytest.raises(InvalidResponse):
            parse_jsonp('cb({"status": "success"})', "cb")


class TestHelpers:
    def test_random_callback_prefix(self):
        assert random_callback("geetest_").startswith("geetest_")

    def test_version_from_static_path(self):
        assert version_from_static_path("/v4/static/v1.9.3-26b399") == "v1.9.3-26b399"

    def test_version_from_short_path(self):
        with pytest.raises(InvalidResponse):
            version_from_static_path("/v4")


class TestGeetestTransport:
    """Tests for GeetestTransport against the fake service."""

    @staticmethod
    def make_transport(service):
        http = AsyncHttpClient(transport=service.transport(), max_retries=0)
        return GeetestTransport(http), http

    async def test_load_params(self):
        service = FakeGeetest(challenges=[make_challenge_data(ques=[[1]])])
        transport, http = self.make_transport(service)

        challenge = await transport.load(
            "cid", RiskType.GOBANG, "uuid-1", WireFormat(), user_info="account:1"
        )
        await http.aclose()

        params = service.load_requests[0]
        assert params["captcha_id"] == "cid"
        assert params["risk_type"] == "gobang"
        assert params["challenge"] == "uuid-1"
        assert params["client_type"] == "web"
        assert params["lang"] == "eng"
        assert params["user_info"] == "account:1"
        assert params["callback"].startswith("geetest_")
        assert challenge.ques == [[1]]

    async def test_load_continuation(self):
        service = FakeGeetest()
        transport, http = self.make_transport(service)
        continuation = {"lot_number": "abc", "payload": "p", "process_token": "t", "payload_protocol": "1", "pt": "1"}

        await transport.load("cid", RiskType.AI, "uuid", WireFormat(), continuation=continuation)
        await http.aclose()

        params = service.load_requests[0]
        for key, value in continuation.items():
            assert params[key] == value
        assert "user_info" not in params

    async def test_verify_params(self):
        service = FakeGeetest(verify_results=[make_verify_success()])
        transport, http = self.make_transport(service)
        challenge = make_challenge(pt="0")

        response = await transport.verify("cid", RiskType.SLIDE, challenge, "w-value", WireFormat())
        await http.aclose()

        params = service.verify_requests[0]
        assert params["w"] == "w-value"
        assert params["pt"] == "0"
        assert params["lot_number"] == challenge.lot_number
        assert params["payload"] == challenge.payload
        assert params["process_token"] == challenge.process_token
        assert params["payload_protocol"] == "1"
        assert response.seccode.pass_token == "pass-token-abc"

    async def test_malformed_challenge(self):
        service = FakeGeetest(challenges=[{"payload": "no lot number"}])
        transport, http = self.make_transport(service)
        with pytest.raises(InvalidResponse):
            await transport.load("cid", RiskType.AI, "uuid", WireFormat())
        await http.aclose()

    async def test_fetch_image_relative_and_absolute(self):
        service = FakeGeetest(images={"pictures/bg.png": b"\x89PNG"})
        transport, http = self.make_transport(service)

        relative = await transport.fetch_image("pictures/bg.png", WireFormat())
        absolute = await transport.fetch_image("https://static.geetest.com/pictures/bg.png", WireFormat())
        await http.aclose()

        assert relative == absolute == b"\x89PNG"

    async def test_missing_image(self):
        transport, http = self.make_transport(FakeGeetest())
        with pytest.raises(NetworkError):
            await transport.fetch_image("nope.png", WireFormat())
        await http.aclose()

    async def test_probe_missing_static_path(self):
        def handler(request):
            cb = request.url.params["callback"]
            return httpx.Response(200, text=f"{cb}({json.dumps({'status': 'success', 'data': {}})})")

        http = AsyncHttpClient(transport=httpx.MockTransport(handler), max_retries=0)
        with pytest.raises(InvalidResponse):
            await GeetestTransport(http).probe_version("cid", WireFormat())
        await http.aclose()
