"""
Test fixtures package for Geeked tests.

This package provides factory functions for creating test objects.
Organized into layers:
- common.py: Constants, challenges, verify payloads, scripts, RSA unsealing
- fake_service.py: Fake service (httpx MockTransport) and orchestrator fakes

Usage:
    from tests.fixtures import make_constants, make_script

    def test_something():
        constants = make_constants(device_id="dev")
        script = make_script(public_key=make_key_material())
"""

from .common import (
    make_constants,
    make_challenge,
    make_challenge_data,
    make_gobang_board,
    make_key_material,
    make_rsa_private_key,
    make_script,
    make_seccode,
    make_verify_continue,
    make_verify_fail,
    make_verify_success,
    open_sealed,
    split_w,
)

from .fake_service import (
    FakeGeetest,
    FakeStore,
    FakeTransport,
)

__all__ = [
    # Common
    "make_constants",
    "make_challenge",
    "make_challenge_data",
    "make_gobang_board",
    "make_key_material",
    "make_rsa_private_key",
    "make_script",
    "make_seccode",
    "make_verify_continue",
    "make_verify_fail",
    "make_verify_success",
    "open_sealed",
    "split_w",
    # Service fakes
    "FakeGeetest",
    "FakeStore",
    "FakeTransport",
]
