"""Deliver sanitized chunks and control events to one WebSocket viewer."""

import asyncio
import json
import logging
import time
from typing import Callable

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

KEEPALIVE_EVENT = {"event": "ping"}


class WebSocketSink:
    """Writes to a WebSocket; once the peer is gone every write is a no-op."""

    def __init__(self, websocket: WebSocket, clock: Callable[[], float] = time.monotonic) -> None:
        self._websocket = websocket
        self._clock = clock
        self.alive = True
        self.last_sent = clock()

    def _peer_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, text: str) -> bool:
        if not self.alive or not self._peer_open():
            self.alive = False
            return False
        try:
            await self._websocket.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.debug("[ws] Peer gone, dropping writes: %s", exc)
            self.alive = False
            return False
        self.last_sent = self._clock()
        return True

    async def send_json(self, payload: dict) -> bool:
        return await self.send_text(json.dumps(payload))

    def mark_closed(self) -> None:
        self.alive = False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.alive or not self._peer_open():
            self.alive = False
            return
        self.alive = False
        try:
            await self._websocket.close(code=code, reason=reason)
        except (RuntimeError, OSError) as exc:
            logger.debug("[ws] Close after peer left: %s", exc)

    async def keepalive(self, interval: float) -> None:
        """Send a liveness probe whenever the channel has been idle for *interval*.

        Runs until the peer is gone; meant to be wrapped in a task and
        cancelled on disconnect.
        """
        while self.alive:
            idle = self._clock() - self.last_sent
            if idle >= interval:
                if not await self.send_json(KEEPALIVE_EVENT):
                    return
                idle = 0.0
            await asyncio.sleep(interval - idle)
