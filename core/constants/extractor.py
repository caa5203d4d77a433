"""
Constant Extractor

Discovers the live script release, fetches it and decodes it.
"""
from __future__ import annotations

import logging
from typing import Optional

from core.http.geetest import GeetestTransport
from core.schemas.constants import ProtocolConstants, ScriptVersion, WireFormat

from .decoder import decode_script


logger = logging.getLogger(__name__)


class ConstantExtractor:
    """
    Usage:
        extractor = ConstantExtractor(transport, discovery_captcha_id)
        constants = await extractor.fetch_and_decode()
    """

    def __init__(
        self,
        transport: Optional[GeetestTransport],
        discovery_captcha_id: str,
        wire: Optional[WireFormat] = None,
    ) -> None:
        self.transport = transport
        self.discovery_captcha_id = discovery_captcha_id
        self.wire = wire or WireFormat()

    def _online(self) -> GeetestTransport:
        if self.transport is None:
            raise RuntimeError("ConstantExtractor has no transport (offline store)")
        return self.transport

    async def probe_version(self) -> ScriptVersion:
        """Ask the discovery endpoint which release is live."""
        return await self._online().probe_version(self.discovery_captcha_id, self.wire)

    async def fetch_script(self, probe: ScriptVersion) -> str:
        return await self._online().fetch_script(probe, self.wire)

    def decode(self, script: str, version: str) -> ProtocolConstants:
        return decode_script(script, version)

    async def fetch_and_decode(
        self,
        known: Optional[ProtocolConstants] = None,
        probe: Optional[ScriptVersion] = None,
    ) -> ProtocolConstants:
        """
        Return constants for the live release.

        Args:
            known: Last extracted constants. Returned unchanged (no script
                fetch) when the live release has the same version.
            probe: Result of an earlier probe_version() call, to avoid a
                second discovery request.
        """
        probe = probe or await self.probe_version()
        if known is not None and known.version == probe.version:
            logger.debug(f"Script {probe.version} unchanged, skipping decode")
            return known

        logger.info(f"Fetching script version: {probe.version}")
        script = await self.fetch_script(probe)
        return self.decode(script, probe.version)
