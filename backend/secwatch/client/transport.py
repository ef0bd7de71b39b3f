"""
Best-effort delivery of captured events to the ingest endpoint.

One in-memory FIFO, at most one drain task at a time. Events are
POSTed one by one with a short pause between sends so a burst of
reports never floods the endpoint. Delivery is fire-and-forget: a
failed send is logged and the event is dropped, never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class TransportQueue:
    """Single-consumer event queue bound to the running event loop."""

    def __init__(
        self,
        endpoint: str,
        client: httpx.AsyncClient | None = None,
        send_delay: float = 0.1,
        timeout: float = 5.0,
    ) -> None:
        self.endpoint = endpoint
        self.send_delay = send_delay
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._queue: deque[dict[str, Any]] = deque()
        self._drain_task: asyncio.Task[None] | None = None
        self.is_processing = False

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, event: dict[str, Any]) -> None:
        """
        Queue an event and make sure a drain is running.

        Never blocks. Outside a running loop the event simply waits for
        the next drain() call.
        """
        self._queue.append(event)
        if self.is_processing:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self.is_processing = True
        self._drain_task = loop.create_task(self._process())

    def clear(self) -> None:
        self._queue.clear()

    async def drain(self) -> None:
        """Send queued events in FIFO order until the queue is empty."""
        if self.is_processing:
            if self._drain_task is not None:
                await self._drain_task
            return
        self.is_processing = True
        await self._process()

    async def _process(self) -> None:
        try:
            while self._queue:
                event = self._queue.popleft()
                await self._send(event)
                if self.send_delay and self._queue:
                    await asyncio.sleep(self.send_delay)
        finally:
            self.is_processing = False

    async def _send(self, event: dict[str, Any]) -> None:
        try:
            response = await self._client.post(self.endpoint, json={"csp-report": event})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "Dropped %s event: delivery failed (%s)",
                event.get("eventType", "unknown"), exc,
            )
        except Exception:
            # Unencodable payloads and the like. Raising here would end the
            # drain and hand the error to the loop handler the capturer owns.
            logger.warning(
                "Dropped %s event: could not be sent",
                event.get("eventType", "unknown"), exc_info=True,
            )

    async def close(self) -> None:
        """Wait for the active drain, then release the HTTP client if we own it."""
        if self._drain_task is not None and not self._drain_task.done():
            await self._drain_task
        if self._owns_client:
            await self._client.aclose()
