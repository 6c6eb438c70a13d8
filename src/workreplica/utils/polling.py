"""Bounded polling for side effects that have no completion signal."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)


async def poll_until(
    predicate: Callable[[], bool],
    *,
    interval: float,
    timeout: float,
    label: str = "condition",
) -> bool:
    """Check predicate every interval seconds until true or timeout.

    Returns:
        True once the predicate held, False if timeout elapsed first.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0
    while True:
        if predicate():
            return True
        attempts += 1
        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.warning(
                "gave up polling", label=label, attempts=attempts
            )
            return False
        logger.debug("still polling", label=label, attempts=attempts)
        await asyncio.sleep(min(interval, remaining))
