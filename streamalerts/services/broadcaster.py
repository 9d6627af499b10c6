"""One-to-many, best-effort delivery of AlertEvents to overlay clients.

No acknowledgment, persistence, or replay: a client that connects after a
publish never sees it, and a client that drops mid-send just misses it.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from streamalerts.models.alert import AlertEvent

logger = logging.getLogger(__name__)

Listener = Callable[[AlertEvent], Awaitable[None] | None]


class AlertClient(Protocol):
    """The subset of ``fastapi.WebSocket`` the broadcaster uses."""

    async def send_json(self, data: Any, mode: str = "text") -> None: ...


class Broadcaster:
    """Tracks connected presentation clients and fans events out to them."""

    def __init__(self) -> None:
        self._clients: set[AlertClient] = set()
        self._listeners: list[Listener] = []
        self._pending: set[asyncio.Task] = set()
        self.published_count = 0

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    def connect(self, client: AlertClient) -> None:
        self._clients.add(client)
        logger.info(f"Overlay client connected ({len(self._clients)} total)")

    def disconnect(self, client: AlertClient) -> None:
        if client in self._clients:
            self._clients.discard(client)
            logger.info(f"Overlay client disconnected ({len(self._clients)} total)")

    @property
    def client_count(self) -> int:
        return len(self._clients)

    # ------------------------------------------------------------------
    # In-process listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, client: AlertClient, payload: dict) -> None:
        try:
            await client.send_json(payload)
        except Exception as e:
            logger.debug(f"Dropping overlay client after send failure: {type(e).__name__}")
            self.disconnect(client)

    async def _notify(self, listener: Listener, event: AlertEvent) -> None:
        try:
            await listener(event)  # type: ignore[misc]
        except Exception as e:
            logger.exception(f"Alert listener failed: {e}")

    def publish(self, event: AlertEvent) -> int:
        """Schedule delivery of *event* to every client; returns the number targeted.

        Must be called from a running event loop. Sends run as background
        tasks so the caller (the webhook acknowledgment) never waits on them.
        """
        self.published_count += 1
        payload = event.to_payload()

        for listener in list(self._listeners):
            if inspect.iscoroutinefunction(listener):
                self._spawn(self._notify(listener, event))
                continue
            try:
                listener(event)
            except Exception as e:
                logger.exception(f"Alert listener failed: {e}")

        clients = list(self._clients)
        for client in clients:
            self._spawn(self._send(client, payload))

        logger.info(f"Alert {event.kind.value}: {event.actor} -> {len(clients)} client(s)")
        return len(clients)

    async def drain(self) -> None:
        """Wait for in-flight sends; used at shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
