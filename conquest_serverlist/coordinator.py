"""Single-flight cache in front of the server collector.

At most one collection run is active at a time. Callers arriving while a
run is active get a loading placeholder instead of waiting; callers
arriving while a fresh result is cached get that result.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from .collector import ServerCollector
from .protocol import DiscoveryResult

logger = logging.getLogger(__name__)


def _retrieve_exception(task: asyncio.Task) -> None:
    # _run logs the failure; the triggering caller may be gone already
    if not task.cancelled():
        task.exception()


class ServerListCoordinator:
    """Owns the two cache slots: the loading flag and the last result.

    The loading flag has no expiry of its own unless ``loading_timeout``
    is set; ``reset_loading()`` clears it by hand.
    """

    def __init__(
        self,
        collector: ServerCollector,
        cache_ttl: float,
        loading_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._collector = collector
        self._cache_ttl = cache_ttl
        self._loading_timeout = loading_timeout
        self._clock = clock
        self._lock = asyncio.Lock()

        # Loading flag
        self._is_loading: bool = False
        self._loading_since: float = 0.0
        self._run_id: int = 0

        # Cached result
        self._cached: Optional[DiscoveryResult] = None
        self._expires_at: float = 0.0

    async def get_server_list(self) -> DiscoveryResult:
        """Return the cached list, a loading placeholder, or a fresh list.

        Only the caller that starts a run awaits it. A failed run
        re-raises its exception to that caller.
        """
        async with self._lock:
            if self._loading_active():
                logger.debug("Server list is currently loading")
                return DiscoveryResult.loading()

            cached = self.cached_result
            if cached is not None:
                logger.debug("Cached response is used")
                return cached

            logger.info("Start loading the server list")
            self._run_id += 1
            self._is_loading = True
            self._loading_since = self._clock()
            task = asyncio.create_task(self._run(self._run_id))
            task.add_done_callback(_retrieve_exception)

        # Shielded: a caller going away must not cancel the run
        return await asyncio.shield(task)

    def reset_loading(self) -> None:
        """Clear the loading flag. The cached result is kept."""
        if self._is_loading:
            logger.info("Loading flag reset by request")
        self._is_loading = False

    async def _run(self, run_id: int) -> DiscoveryResult:
        try:
            result = await self._collector.collect()
        except Exception:
            logger.exception("Failed to load the server list")
            raise
        else:
            self._cached = result
            self._expires_at = self._clock() + self._cache_ttl
            return result
        finally:
            # A reset may have let a newer run start; leave its flag alone
            if run_id == self._run_id:
                self._is_loading = False

    def _loading_active(self) -> bool:
        if not self._is_loading:
            return False
        if self._loading_timeout is None:
            return True
        age = self._clock() - self._loading_since
        if age < self._loading_timeout:
            return True
        logger.warning(
            "Loading flag is stale (set %.1fs ago), starting a new run", age,
        )
        self._is_loading = False
        return False

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def cached_result(self) -> Optional[DiscoveryResult]:
        """The last result, or None once it has expired."""
        if self._cached is None or self._clock() >= self._expires_at:
            return None
        return self._cached
