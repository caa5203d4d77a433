"""
Proof-of-Work

Bounded nonce search for the per-round proof-of-work.

Message format:
    ``{version}|{bits}|{hashfunc}|{datetime}|{captcha_id}|{lot_number}||{nonce}``

Nonces are a fixed-width lowercase hex counter starting at zero, so the
search is deterministic: the solution is always the smallest satisfying
nonce, whether one worker or several scan the range.
"""
from __future__ import annotations

import asyncio
import functools
import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from core.schemas.errors import PowExhausted, SolveCancelled

from .hashing import get_hash_function, meets_difficulty


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PowSolution:
    """A nonce that satisfies the difficulty target."""
    nonce: int
    nonce_hex: str
    iterations: int
    pow_msg: str
    pow_sign: str


def pow_base(
    version: str,
    bits: int,
    hashfunc: str,
    datetime: str,
    captcha_id: str,
    lot_number: str,
) -> str:
    """Message prefix the nonce is appended to."""
    return f"{version}|{bits}|{hashfunc}|{datetime}|{captcha_id}|{lot_number}||"


def _scan(
    base: str,
    hasher,
    bits: int,
    start: int,
    step: int,
    limit: int,
    width: int,
    cancel: threading.Event,
    check_interval: int,
    best: list,
    lock: threading.Lock,
) -> int:
    """
    Scan ``start, start+step, ...`` below ``limit``.

    ``best`` holds ``[nonce, digest]`` of the smallest solution found by any
    worker. Scanning stops once the candidate passes it. Returns the number
    of hashes computed.
    """
    count = 0
    n = start
    while n < limit and n < best[0]:
        if count % check_interval == 0 and cancel.is_set():
            break
        digest = hasher(f"{base}{n:0{width}x}".encode()).hexdigest()
        count += 1
        if meets_difficulty(digest, bits):
            with lock:
                if n < best[0]:
                    best[0] = n
                    best[1] = digest
            break
        n += step
    return count


def solve_pow(
    base: str,
    hashfunc: str,
    bits: int,
    *,
    max_iterations: int,
    workers: int = 1,
    nonce_width: int = 16,
    cancel: Optional[threading.Event] = None,
    check_interval: int = 4096,
) -> PowSolution:
    """
    Find the smallest nonce whose digest meets ``bits`` of difficulty.

    Args:
        base: Message prefix from pow_base()
        hashfunc: md5, sha1 or sha256
        bits: Difficulty in leading zero bits
        max_iterations: Nonces ``0 .. max_iterations-1`` are tried
        workers: Threads splitting the range by stride
        nonce_width: Hex digits of the nonce suffix
        cancel: Checked every ``check_interval`` hashes per worker
        check_interval: Cancellation check period

    Raises:
        CryptoError: Unknown hash function.
        PowExhausted: No nonce below the ceiling satisfies the target.
        SolveCancelled: ``cancel`` was set before a solution was found.
    """
    hasher = get_hash_function(hashfunc)
    cancel = cancel or threading.Event()
    check_interval = max(1, check_interval)
    best: list = [max_iterations, None]
    lock = threading.Lock()
    scan = functools.partial(
        _scan, base, hasher, bits,
        limit=max_iterations,
        width=nonce_width,
        cancel=cancel,
        check_interval=check_interval,
        best=best,
        lock=lock,
    )

    if workers <= 1:
        total = scan(start=0, step=1)
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pow") as pool:
            futures = [pool.submit(scan, start=i, step=workers) for i in range(workers)]
            total = sum(f.result() for f in futures)

    if best[1] is not None:
        nonce = best[0]
        nonce_hex = f"{nonce:0{nonce_width}x}"
        logger.debug(f"PoW solved: bits={bits} nonce={nonce} hashes={total}")
        return PowSolution(
            nonce=nonce,
            nonce_hex=nonce_hex,
            iterations=total,
            pow_msg=f"{base}{nonce_hex}",
            pow_sign=best[1],
        )

    if cancel.is_set():
        raise SolveCancelled(f"PoW search cancelled after {total} hashes")

    raise PowExhausted(
        f"No PoW nonce within {max_iterations} iterations (bits={bits})",
        iterations=max_iterations,
        bits=bits,
    )


async def solve_pow_async(
    base: str,
    hashfunc: str,
    bits: int,
    *,
    executor: Optional[Executor] = None,
    **kwargs,
) -> PowSolution:
    """
    Run solve_pow() off the event loop.

    Cancelling the awaiting task sets the search's cancel flag, so worker
    threads stop at their next check instead of running to the ceiling.
    """
    cancel = threading.Event()
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(
        executor,
        functools.partial(solve_pow, base, hashfunc, bits, cancel=cancel, **kwargs),
    )
    try:
        return await future
    except asyncio.CancelledError:
        cancel.set()
        raise
