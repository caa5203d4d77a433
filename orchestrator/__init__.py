"""
Verification Orchestration

Runs the load -> solve -> seal -> verify state machine for one session
and exposes the high-level Geeked client.

Public API:
- Geeked: High-level client (config, HTTP, store and solvers wired up)
- VerificationOrchestrator: The round loop
- Session: State of one solve attempt
- RoundRecord: One request/response cycle
- OrchestratorState: States of the machine
- ContinuationToken: Values carried from a Continue response
"""

from orchestrator.geeked import (
    Geeked,
    build_http_client,
    build_store,
    get_shared_store,
    reset_shared_stores,
)
from orchestrator.session import (
    ContinuationToken,
    OrchestratorState,
    RoundRecord,
    Session,
)
from orchestrator.verification import VerificationOrchestrator


__all__ = [
    # Client
    "Geeked",
    "build_http_client",
    "build_store",
    "get_shared_store",
    "reset_shared_stores",
    # Round loop
    "VerificationOrchestrator",
    # Session state
    "Session",
    "RoundRecord",
    "OrchestratorState",
    "ContinuationToken",
]
