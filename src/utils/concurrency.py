"""Bounded-concurrency helpers for per-chunk external calls.

The ingestion pipeline embeds chunks one at a time by default.  When
``embed_concurrency`` is raised, :func:`throttled_gather` runs a window of
embedding calls side by side while keeping results positionally aligned
with their inputs, so the caller can still write chunks in source order and
stop at the first failed index.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from src.utils.errors import ServiceTimeoutError

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Concurrency limit shared by every awaitable in this call.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *(_wrapped(c) for c in coros), return_exceptions=return_exceptions
    )


def first_failure(results: list[_T | BaseException]) -> int | None:
    """Return the index of the first exception in *results*, or ``None``."""
    for idx, item in enumerate(results):
        if isinstance(item, BaseException):
            return idx
    return None


async def with_timeout(
    awaitable: Awaitable[_T],
    timeout: float | None,
    operation: str,
    provider_name: str | None = None,
) -> _T:
    """Await *awaitable*, converting a timeout into :class:`ServiceTimeoutError`.

    ``timeout`` of ``None`` or ``<= 0`` waits indefinitely.
    """
    if timeout is None or timeout <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise ServiceTimeoutError(
            message=f"{operation} timed out after {timeout:g}s",
            provider_name=provider_name,
        ) from exc
