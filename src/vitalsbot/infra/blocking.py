"""Run blocking SDK calls off the event loop with a bounded timeout.

The Google client libraries and ``urllib`` are synchronous. Every external
call goes through `run_blocking` so a request handler suspends instead of
holding the loop, and a hung provider surfaces as `ExternalServiceError`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from vitalsbot.domain.errors import ExternalServiceError

T = TypeVar("T")


async def run_blocking(
    fn: Callable[..., T],
    *args: Any,
    service: str,
    timeout: float,
    **kwargs: Any,
) -> T:
    """Call ``fn(*args, **kwargs)`` in a worker thread.

    Raises:
        ExternalServiceError: If the call does not finish within `timeout`.
            Exceptions raised by `fn` itself propagate unchanged.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout)
    except (asyncio.TimeoutError, TimeoutError) as e:
        raise ExternalServiceError(service, f"timed out after {timeout}s") from e
