"""Async polling client for the sightings list.

A newer fetch supersedes an older one: the in-flight request is cancelled
so a changed filter never races a stale response back to the caller. The
poller only ever issues reads.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Union

import httpx

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 60.0


class SightingsPoller:
    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None,
                 interval: float = POLL_INTERVAL_SECONDS, timeout: float = 10.0):
        self.interval = interval
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._inflight: Optional[asyncio.Task] = None

    async def fetch(self, range_token: str = "24h", recently: bool = False) -> List[dict]:
        """GET /sightings, cancelling any fetch this poller still has in flight.

        Raises ``asyncio.CancelledError`` in the caller whose fetch was superseded.
        """
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        params = {"recently": "1"} if recently else {"range": range_token}
        task = asyncio.ensure_future(self._get(params))
        self._inflight = task
        try:
            return await task
        finally:
            if self._inflight is task:
                self._inflight = None

    async def _get(self, params: dict) -> List[dict]:
        resp = await self._client.get("/sightings", params=params)
        resp.raise_for_status()
        return resp.json()

    async def poll(
        self,
        on_update: Callable[[List[dict]], Union[None, Awaitable[None]]],
        stop: asyncio.Event,
        range_token: str = "24h",
        recently: bool = False,
    ):
        """Fetch every ``interval`` seconds until ``stop`` is set.

        HTTP failures are logged and the next tick retries. A fetch issued on
        the same poller while a tick is in flight cancels that tick and ends
        the loop.
        """
        while not stop.is_set():
            try:
                sightings = await self.fetch(range_token, recently)
            except httpx.HTTPError as e:
                logger.warning(f"Fetch sightings error: {e}")
            else:
                result = on_update(sightings)
                if asyncio.iscoroutine(result):
                    await result
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def aclose(self):
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        if self._owns_client:
            await self._client.aclose()
