"""Process-lifetime cache of generated reports keyed by request fingerprint."""

import asyncio
import hashlib
import json
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from attendance_engine.schemas.report import ReportResult

logger = logging.getLogger(__name__)


def fingerprint(normalized_request: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a normalized request."""
    canonical = json.dumps(normalized_request, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ReportCache(Protocol):
    """Storage interface for cached report results."""

    generation: int

    def get(self, key: str) -> ReportResult | None: ...

    def set(self, key: str, result: ReportResult, generation: int | None = None) -> None: ...

    def invalidate(self, key: str | None = None) -> None: ...


class InMemoryReportCache:
    """Dictionary-backed report cache.

    Writes are last-writer-wins. Every invalidation bumps ``generation``, and
    a write tagged with an older generation is dropped. With ``max_entries``
    set, the least recently used entry is evicted once the cache is full.
    """

    def __init__(self, max_entries: int | None = None):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, ReportResult] = OrderedDict()
        self.generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> ReportResult | None:
        result = self._entries.get(key)
        if result is not None:
            self._entries.move_to_end(key)
        return result

    def set(self, key: str, result: ReportResult, generation: int | None = None) -> None:
        if generation is not None and generation != self.generation:
            logger.debug(f"Discarded stale report {key[:12]} from generation {generation}")
            return
        self._entries[key] = result
        self._entries.move_to_end(key)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cached report {evicted[:12]}")

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or every entry when no key is given."""
        self.generation += 1
        if key is None:
            if self._entries:
                logger.info(f"Flushing {len(self._entries)} cached reports")
            self._entries.clear()
        else:
            self._entries.pop(key, None)


class InFlightRequests:
    """Shares one running computation among concurrent callers of the same key."""

    def __init__(self):
        self._pending: dict[str, asyncio.Future] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    async def run(self, key: str, compute: Callable[[], Awaitable[Any]]) -> tuple[Any, bool]:
        """Run ``compute`` once per key at a time.

        Returns:
            Tuple of (result, shared) where ``shared`` is True when the caller
            joined a computation started by someone else
        """
        pending = self._pending.get(key)
        if pending is not None:
            return await asyncio.shield(pending), True

        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            result = await compute()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so a computation with no waiters does not warn
            future.exception()
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            self._pending.pop(key, None)
