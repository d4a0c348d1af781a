from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from .backend import BackendError
from .models import SearchResult

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.4
DEFAULT_LIMIT = 50

SearchFn = Callable[[str, int], Awaitable[Sequence[SearchResult]]]
Listener = Callable[[], None]


class SearchIndexClient:
    """Debounced front for the semantic ranking service.

    ``submit`` restarts the debounce timer on every call; only the last query
    of a burst reaches ``search``. Each dispatched request carries a
    generation number and a response is applied only when its generation is
    still the latest, so a slow stale answer never overwrites a newer one.
    """

    def __init__(
        self,
        search: SearchFn,
        *,
        delay: float = DEFAULT_DELAY,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._search = search
        self.delay = max(0.0, delay)
        self.limit = max(1, limit)
        self._query = ""
        self._results: tuple[SearchResult, ...] = ()
        self._loading = False
        self._generation = 0
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[bool]] = set()
        self._listeners: list[Listener] = []

    @property
    def query(self) -> str:
        return self._query

    @property
    def results(self) -> tuple[SearchResult, ...]:
        return self._results

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def submit(self, query: str) -> None:
        self._cancel_timer()
        self._query = query
        if not query.strip():
            self._generation += 1
            changed = bool(self._results) or self._loading
            self._results = ()
            self._loading = False
            if changed:
                self._notify()
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._dispatch, query)

    async def run_query(self, query: str) -> bool:
        """Issue one request now; returns True when its results were applied."""
        self._generation += 1
        generation = self._generation
        self._loading = True
        self._notify()
        try:
            found = await self._search(query, self.limit)
        except BackendError as exc:
            logger.warning("Semantic search failed for %r: %s", query, exc)
            if generation == self._generation:
                self._loading = False
                self._notify()
            return False
        if generation != self._generation:
            logger.debug("Discarding stale results for %r", query)
            return False
        self._results = tuple(found)
        self._loading = False
        self._notify()
        return True

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def cancel(self) -> None:
        self._cancel_timer()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._loading = False

    def _dispatch(self, query: str) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self.run_query(query))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
