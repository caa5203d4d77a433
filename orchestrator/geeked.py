"""
Geeked Client

High-level entry point: wires the HTTP client, constants store, solver
registry and orchestrator together from a RuntimeConfig.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING

from core.config import RuntimeConfig, get_default_config
from core.constants.extractor import ConstantExtractor
from core.constants.store import BoundStore, ConstantStore
from core.http.client import AsyncHttpClient
from core.http.geetest import GeetestTransport
from core.schemas.challenge import GeekedResult, RiskType
from core.schemas.constants import ProtocolConstants, WireFormat
from core.schemas.errors import SolveTimeout

from solvers.registry import SolverRegistry, create_default_registry

from orchestrator.session import OrchestratorState, Session
from orchestrator.verification import VerificationOrchestrator

if TYPE_CHECKING:
    import httpx

    from solvers.icon import IconClassifier


logger = logging.getLogger(__name__)


def build_http_client(
    config: RuntimeConfig,
    *,
    proxy: Optional[str] = None,
    local_address: Optional[str] = None,
    transport: Optional["httpx.AsyncBaseTransport"] = None,
) -> AsyncHttpClient:
    """HTTP client configured from ``config.http``; explicit arguments win."""
    return AsyncHttpClient(
        timeout=config.http.timeout,
        max_retries=config.http.max_retries,
        retry_delay=config.http.retry_delay,
        default_headers={"User-Agent": config.http.user_agent},
        proxy=proxy or config.proxy,
        local_address=local_address or config.local_address,
        transport=transport,
    )


def build_extractor(config: RuntimeConfig, transport: Optional[GeetestTransport]) -> ConstantExtractor:
    wire = WireFormat(load_url=config.protocol.load_url) if config.protocol.load_url else None
    return ConstantExtractor(transport, config.protocol.discovery_captcha_id, wire)


def build_store(config: RuntimeConfig, transport: Optional[GeetestTransport]) -> ConstantStore:
    """Store from ``config.protocol``. Without a transport it can only read and invalidate the cache."""
    return ConstantStore(
        build_extractor(config, transport),
        config.protocol.cache_dir,
        use_stale_on_probe_failure=config.protocol.use_stale_on_probe_failure,
    )


# Process-wide stores, one per cache location and discovery endpoint.
_shared_stores: dict[tuple[str, str, Optional[str], bool], ConstantStore] = {}


def get_shared_store(config: RuntimeConfig) -> ConstantStore:
    """
    The process-wide ConstantStore for ``config``.

    Every Geeked built from an equivalent config shares it, so concurrent
    sessions that miss on the same version run a single extraction.
    The returned store has no transport of its own; bind one with BoundStore.
    """
    protocol = config.protocol
    key = (
        str(Path(protocol.cache_dir).expanduser().resolve()),
        protocol.discovery_captcha_id,
        protocol.load_url,
        protocol.use_stale_on_probe_failure,
    )
    store = _shared_stores.get(key)
    if store is None:
        store = build_store(config, transport=None)
        _shared_stores[key] = store
    return store


def reset_shared_stores() -> None:
    """Forget every process-wide store (their disk caches are kept)."""
    _shared_stores.clear()


class Geeked:
    """
    Solve one captcha id / risk type pair.

    Usage:
        async with Geeked("captcha_id", "slide", proxy="http://127.0.0.1:8080") as geeked:
            result = await geeked.solve(timeout=60)
            print(result.pass_token)

    Each solve() runs in its own Session; several solves may run
    concurrently on one instance. Unless a store is injected, every
    instance built from an equivalent config shares one process-wide
    constants store.
    """

    def __init__(
        self,
        captcha_id: str,
        risk_type: RiskType | str,
        *,
        user_info: Optional[str] = None,
        proxy: Optional[str] = None,
        local_address: Optional[str] = None,
        config: Optional[RuntimeConfig] = None,
        registry: Optional[SolverRegistry] = None,
        icon_classifier: Optional["IconClassifier"] = None,
        store: Optional[ConstantStore] = None,
        http_transport: Optional["httpx.AsyncBaseTransport"] = None,
    ) -> None:
        """
        Args:
            captcha_id: Site captcha id
            risk_type: ``slide``, ``gobang``, ``icon`` or ``ai``
            user_info: Optional site-specific binding string
            proxy: Proxy URL (http, https or socks5)
            local_address: Source IP for outgoing connections
            config: Runtime configuration (default: get_default_config())
            registry: Solver registry (default: built-in solvers)
            icon_classifier: Enables the icon solver when no registry is given
            store: Constants store (default: the process-wide store for config)
            http_transport: httpx transport override, for tests
        """
        if not captcha_id:
            raise ValueError("captcha_id is required")

        self.captcha_id = captcha_id
        self.risk_type = RiskType.parse(risk_type)
        self.user_info = user_info
        self.config = config or get_default_config()
        self.local_address = local_address or self.config.local_address

        self.http = build_http_client(
            self.config,
            proxy=proxy,
            local_address=self.local_address,
            transport=http_transport,
        )
        self.transport = GeetestTransport(self.http)
        self.store = store or BoundStore(
            get_shared_store(self.config), build_extractor(self.config, self.transport)
        )
        self.registry = registry or create_default_registry(icon_classifier)

        protocol = self.config.protocol
        self.orchestrator = VerificationOrchestrator(
            self.store,
            self.transport,
            self.registry,
            max_rounds=protocol.max_rounds,
            pow_max_iterations=protocol.pow_max_iterations,
            pow_workers=protocol.pow_workers,
            pow_check_interval=protocol.pow_check_interval,
            load_url=protocol.load_url,
            verify_url=protocol.verify_url,
        )
        self.last_session: Optional[Session] = None

    def new_session(self) -> Session:
        return Session(
            captcha_id=self.captcha_id,
            risk_type=self.risk_type,
            user_info=self.user_info,
        )

    async def prefetch_constants(self) -> ProtocolConstants:
        """Warm the constants store before the first solve."""
        return await self.store.get_current()

    async def solve(self, timeout: Optional[float] = None) -> GeekedResult:
        """
        Solve the captcha and return the service's seccode.

        Args:
            timeout: Overall deadline in seconds (None = no deadline)

        Raises:
            SolveTimeout: The deadline passed first.
            CaptchaFailed, RoundLimitExceeded, SolverUnavailable,
            NetworkError, DeobfuscationFailed, CryptoError: From the run.
        """
        session = self.new_session()
        self.last_session = session
        logger.info(f"Solving {self.risk_type.value} captcha {self.captcha_id}")

        if timeout is None:
            return await self.orchestrator.run(session)

        try:
            return await asyncio.wait_for(self.orchestrator.run(session), timeout)
        except asyncio.TimeoutError as e:
            session.error = f"timed out after {timeout}s"
            if not session.finished:
                session.transition(OrchestratorState.FAIL)
            raise SolveTimeout(
                f"Solve did not finish within {timeout}s",
                timeout=timeout,
                details={"rounds": len(session.history), "state": session.state.value},
            ) from e

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "Geeked":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
