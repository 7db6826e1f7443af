"""
Request Deduplicator

Collapses concurrent calls that share a dedupe key into one underlying
operation. The first caller starts an ``asyncio`` task and registers it
under the key; later callers with the same key await that task instead of
starting their own. The registry entry is removed as soon as the task
settles, success or failure, so the next call with the key starts fresh.

Waiters await the shared task through ``asyncio.shield``: cancelling one
caller never cancels the operation the other callers are waiting on.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from compression_service.core.config.constants import Stage
from compression_service.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RequestDeduplicator(Generic[T]):
    """Registry of in-flight operations keyed by dedupe key."""

    def __init__(self):
        self._in_flight: dict[str, asyncio.Future[T]] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    def __contains__(self, key: str) -> bool:
        return key in self._in_flight

    async def run(self, key: str | None, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` once per concurrent ``key``.

        Args:
            key: Dedupe key; ``None`` or an empty key always runs independently
            operation: Zero-argument coroutine factory

        Returns:
            The settled outcome of the single shared operation. Failures are
            re-raised to every waiter.
        """
        if not key:
            return await operation()

        existing = self._in_flight.get(key)
        if existing is not None:
            logger.info(
                "Joining in-flight compression",
                stage=Stage.DEDUP_CHECK.value,
                dedupe_key=key,
            )
            return await asyncio.shield(existing)

        task = asyncio.ensure_future(self._execute(key, operation))
        self._in_flight[key] = task
        return await asyncio.shield(task)

    async def _execute(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        finally:
            self._in_flight.pop(key, None)
