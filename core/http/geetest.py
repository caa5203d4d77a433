"""
Geetest Transport

Typed wrapper around the service's four exchanges: version discovery,
script fetch, challenge load and answer verify. The service speaks JSONP;
this module is the only place that knows how to unwrap it.
"""

from __future__ import annotations

import json
import logging
import random
import time
import uuid
from typing import Any, Optional

from core.schemas.challenge import Challenge, RiskType, VerifyResponse
from core.schemas.constants import ScriptVersion, WireFormat
from core.schemas.errors import InvalidResponse

from .client import AsyncHttpClient


logger = logging.getLogger(__name__)


def random_callback(prefix: str = "geetest_", rng: Optional[random.Random] = None) -> str:
    """Callback name in the form the service's own widget generates."""
    r = (rng or random).random()
    return f"{prefix}{int(time.time() * 1000) + int(r * 10000)}"


def parse_jsonp(text: str, callback: str) -> dict[str, Any]:
    """
    Unwrap ``callback({...})`` and return the ``data`` member.

    Raises:
        InvalidResponse: If the wrapper is malformed or status is not success.
    """
    prefix = f"{callback}("
    start = text.find(prefix)
    if start < 0:
        raise InvalidResponse(
            "Invalid JSONP format",
            details={"snippet": text[:200]},
        )
    body = text[start + len(prefix):].rstrip().rstrip(";")
    if not body.endswith(")"):
        raise InvalidResponse("Unterminated JSONP response", details={"snippet": text[:200]})
    body = body[:-1]

    try:
        wrapper = json.loads(body)
    except json.JSONDecodeError as e:
        raise InvalidResponse(f"JSONP body is not JSON: {e}") from e

    if not isinstance(wrapper, dict):
        raise InvalidResponse("JSONP body is not an object")

    status = wrapper.get("status")
    if status != "success":
        raise InvalidResponse(
            f"Service returned status: {status}",
            details={k: wrapper.get(k) for k in ("status", "code", "msg") if k in wrapper},
        )

    data = wrapper.get("data")
    if not isinstance(data, dict):
        raise InvalidResponse("JSONP response has no data object")
    return data


def version_from_static_path(static_path: str) -> str:
    """Extract the release segment from e.g. ``/v4/static/v1.9.3-26b399``."""
    parts = static_path.split("/")
    if len(parts) < 4 or not parts[3]:
        raise InvalidResponse(
            f"Cannot read version from static_path {static_path!r}",
        )
    return parts[3]


class GeetestTransport:
    """
    Service exchanges on top of AsyncHttpClient.

    Endpoints and request conventions come from a WireFormat so that a
    new constant set can move them without a code change.
    """

    def __init__(
        self,
        http: AsyncHttpClient,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.http = http
        self._rng = rng or random.Random()

    async def _jsonp_get(self, url: str, params: dict[str, Any], prefix: str) -> dict[str, Any]:
        callback = random_callback(prefix, self._rng)
        query = {"callback": callback, **params}
        response = await self.http.get(url, params=query)
        return parse_jsonp(response.text, callback)

    async def probe_version(self, discovery_captcha_id: str, wire: WireFormat) -> ScriptVersion:
        """Lightweight discovery call: which script release is live."""
        data = await self._jsonp_get(
            wire.load_url,
            {
                "captcha_id": discovery_captcha_id,
                "challenge": str(uuid.uuid4()),
                "client_type": wire.client_type,
                "lang": "en",
            },
            wire.callback_prefix,
        )
        static_path = data.get("static_path")
        if not isinstance(static_path, str):
            raise InvalidResponse("Missing static_path in discovery response")
        return ScriptVersion(
            version=version_from_static_path(static_path),
            static_path=static_path,
        )

    async def fetch_script(self, probe: ScriptVersion, wire: WireFormat) -> str:
        url = f"{wire.script_host}{probe.static_path}{wire.script_path}"
        logger.debug(f"Fetching script {url}")
        response = await self.http.get(url)
        return response.text

    async def load(
        self,
        captcha_id: str,
        risk_type: RiskType,
        challenge: str,
        wire: WireFormat,
        *,
        user_info: Optional[str] = None,
        continuation: Optional[dict[str, str]] = None,
    ) -> Challenge:
        """
        Request a challenge.

        ``continuation`` carries lot_number/payload/process_token/
        payload_protocol/pt from a Continue response into the reload.
        """
        params: dict[str, Any] = {
            "captcha_id": captcha_id,
            "challenge": challenge,
            "client_type": wire.client_type,
            "risk_type": risk_type.value,
            "lang": wire.lang,
        }
        if user_info:
            params["user_info"] = user_info
        if continuation:
            params.update(continuation)

        data = await self._jsonp_get(wire.load_url, params, wire.callback_prefix)
        try:
            return Challenge.model_validate(data)
        except ValueError as e:
            raise InvalidResponse(f"Malformed challenge: {e}") from e

    async def verify(
        self,
        captcha_id: str,
        risk_type: RiskType,
        challenge: Challenge,
        w: str,
        wire: WireFormat,
    ) -> VerifyResponse:
        params = {
            "captcha_id": captcha_id,
            "client_type": wire.client_type,
            "lot_number": challenge.lot_number,
            "risk_type": risk_type.value,
            "payload": challenge.payload,
            "process_token": challenge.process_token,
            "payload_protocol": challenge.payload_protocol or wire.payload_protocol,
            "pt": challenge.pt,
            "w": w,
        }
        data = await self._jsonp_get(wire.verify_url, params, wire.callback_prefix)
        try:
            return VerifyResponse.model_validate(data)
        except ValueError as e:
            raise InvalidResponse(f"Malformed verify response: {e}") from e

    async def fetch_image(self, path: str, wire: WireFormat) -> bytes:
        """Download a static asset (``bg``, ``slice``, ``imgs``)."""
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = f"{wire.image_host}/{path.lstrip('/')}"
        response = await self.http.get(url)
        return response.content
