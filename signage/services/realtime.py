import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Iterable, Protocol

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from signage.services.cached_reads import CachedReads
from signage.services.screen_state import build_screen_state_map, encode_state_message

logger = logging.getLogger(__name__)

SEND_TIMEOUT_SEC = float(os.getenv("SIGNAGE_BROADCAST_SEND_TIMEOUT_SEC", "5"))


class Subscriber(Protocol):
    def is_ready(self) -> bool: ...

    async def send(self, payload: str, revision: int = 0) -> None: ...


class SubscriberRegistry(Protocol):
    def subscribers(self) -> Iterable[Subscriber]: ...


class WebSocketSubscriber:
    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.revision = 0

    def is_ready(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, payload: str, revision: int = 0) -> None:
        # A payload older than one already sent to this client would roll it back.
        if revision:
            if revision <= self.revision:
                return
            self.revision = revision
        await self.websocket.send_text(payload)


class RealtimeHub:
    """Registry of connected signage clients."""

    def __init__(self) -> None:
        self._clients: dict[WebSocket, WebSocketSubscriber] = {}

    async def connect(self, websocket: WebSocket, broadcaster: "StateBroadcaster | None" = None) -> WebSocketSubscriber:
        """Accept and register ``websocket``, then push the current state to it.

        The client is registered before its initial snapshot is read, so a
        broadcast racing the connect either reaches it or is older than the
        snapshot it gets.
        """
        await websocket.accept()
        subscriber = WebSocketSubscriber(websocket)
        self._clients[websocket] = subscriber
        logger.info("Websocket client connected (%d total)", len(self._clients))
        if broadcaster is not None:
            revision, payload = await broadcaster.versioned_snapshot()
            await subscriber.send(payload, revision)
        return subscriber

    def disconnect(self, websocket: WebSocket) -> None:
        if self._clients.pop(websocket, None) is not None:
            logger.info("Websocket client disconnected (%d total)", len(self._clients))

    def subscribers(self) -> list[WebSocketSubscriber]:
        stale = [ws for ws, sub in self._clients.items() if sub.websocket.client_state == WebSocketState.DISCONNECTED]
        for websocket in stale:
            self._clients.pop(websocket, None)
        return list(self._clients.values())

    def __len__(self) -> int:
        return len(self._clients)


@dataclass
class BroadcastReport:
    sent: int = 0
    skipped: int = 0
    failed: int = 0


class StateBroadcaster:
    def __init__(self, reads: CachedReads, send_timeout: float = SEND_TIMEOUT_SEC) -> None:
        self._reads = reads
        self._registry: SubscriberRegistry | None = None
        self._revision = 0
        self.send_timeout = send_timeout

    def set_channel(self, registry: SubscriberRegistry | None) -> None:
        self._registry = registry

    async def snapshot(self) -> str:
        return encode_state_message(await build_screen_state_map(self._reads))

    async def versioned_snapshot(self) -> tuple[int, str]:
        # The revision is taken before reading, so a higher revision never
        # carries older state than a lower one.
        self._revision += 1
        revision = self._revision
        return revision, await self.snapshot()

    async def broadcast(self) -> BroadcastReport:
        """Push the current screen state to every ready subscriber.

        Send failures are logged per subscriber and never raised; errors
        while reading the state itself propagate.
        """
        registry = self._registry
        if registry is None:
            logger.warning("Subscriber registry not initialized, broadcast skipped")
            return BroadcastReport()

        revision, payload = await self.versioned_snapshot()
        report = BroadcastReport()
        ready: list[Subscriber] = []
        for subscriber in list(registry.subscribers()):
            if subscriber.is_ready():
                ready.append(subscriber)
            else:
                report.skipped += 1

        results = await asyncio.gather(*(self._send(subscriber, payload, revision) for subscriber in ready))
        report.sent = sum(1 for ok in results if ok)
        report.failed = len(results) - report.sent
        logger.debug("Broadcast state to %d subscribers (%d skipped, %d failed)", report.sent, report.skipped, report.failed)
        return report

    async def _send(self, subscriber: Subscriber, payload: str, revision: int) -> bool:
        try:
            await asyncio.wait_for(subscriber.send(payload, revision), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Broadcast send timed out after %.1fs", self.send_timeout)
            return False
        except Exception:
            logger.warning("Broadcast send failed", exc_info=True)
            return False
        return True
