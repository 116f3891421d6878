from __future__ import annotations

import asyncio
import json
import logging
import urllib.request
from typing import Any, Awaitable, Callable

LOGGER = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[Any]]
ResultHandler = Callable[[Any], None]


async def fetch_json(url: str, timeout: float = 30.0) -> Any:
    def _get() -> Any:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            return json.loads(response.read().decode("utf-8"))

    return await asyncio.to_thread(_get)


class DataLoader:
    """Runs at most one fetch at a time; a newer request supersedes the current one.

    Each request gets a generation number. A response is handed to its handler
    only if no request was made after it.
    """

    def __init__(self, fetcher: Fetcher) -> None:
        self._fetcher = fetcher
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        self._pending: tuple[int, str, ResultHandler] | None = None
        self.last_url: str | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def in_flight(self) -> bool:
        return self._pending is not None or (self._task is not None and not self._task.done())

    def request(self, url: str, on_result: ResultHandler) -> None:
        self.cancel()
        self._generation += 1
        self.last_url = url
        LOGGER.debug("Requesting %s (generation %d)", url, self._generation)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Started by the next wait().
            self._pending = (self._generation, url, on_result)
            return
        self._task = loop.create_task(self._load(self._generation, url, on_result))

    def cancel(self) -> None:
        self._pending = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _load(self, generation: int, url: str, on_result: ResultHandler) -> None:
        try:
            payload = await self._fetcher(url)
        except asyncio.CancelledError:
            LOGGER.debug("Fetch of %s cancelled", url)
            raise
        except Exception:
            LOGGER.exception("Failed to fetch %s", url)
            raise
        if generation != self._generation:
            LOGGER.info("Discarding stale response from %s", url)
            return
        on_result(payload)

    async def wait(self) -> None:
        """Wait for the current request, following any request that supersedes it.

        Re-raises the failure of the request that is current when it fails.
        """
        if self._pending is not None:
            generation, url, on_result = self._pending
            self._pending = None
            self._task = asyncio.get_running_loop().create_task(
                self._load(generation, url, on_result)
            )
        while self._task is not None:
            task = self._task
            try:
                await task
            except asyncio.CancelledError:
                if task is self._task:
                    raise
                continue
            finally:
                if task is self._task and task.done():
                    self._task = None
