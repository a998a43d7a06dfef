"""
Auto-reconnecting WebSocket base client.
Used by the push-mode exchange connectors and the chain watcher.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


class ReconnectingWebSocket(ABC):
    """
    Supervised WebSocket task with a fixed-delay, unbounded restart policy.

    Subclasses implement `_on_open` (send subscriptions), `_handle_message`
    and optionally `_on_close`. The loop only ends when `stop()` is called.
    """

    label = "WebSocket"

    def __init__(
        self,
        ws_url: str,
        reconnect_delay: float = 5,
        ping_interval: int = 20,
        ping_timeout: int = 20
    ):
        self.ws_url = ws_url
        self.reconnect_delay = reconnect_delay
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout

        self.ws = None
        self.running = False
        self.ws_connected = False
        self.reconnect_count = 0

    async def start(self):
        """Start the WebSocket connection with auto-reconnect."""
        self.running = True

        while self.running:
            try:
                await self._connect_and_listen()
            except Exception as e:
                logger.error(f"{self.label} error: {e}")

            self.ws_connected = False
            self._on_close()

            if self.running:
                self.reconnect_count += 1
                logger.info(f"🔄 {self.label} disconnected, reconnecting in {self.reconnect_delay}s...")
                await asyncio.sleep(self.reconnect_delay)

    async def stop(self):
        """Stop the WebSocket connection."""
        self.running = False
        if self.ws is not None:
            await self.ws.close()
        logger.info(f"{self.label} stopped")

    async def _connect_and_listen(self):
        """Connect to WebSocket and listen for messages."""
        logger.info(f"Connecting to {self.label}: {self.ws_url}")

        try:
            async with websockets.connect(
                self.ws_url,
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout
            ) as ws:
                self.ws = ws
                self.ws_connected = True
                logger.info(f"✅ Connected to {self.label}")

                await self._on_open(ws)

                async for message in ws:
                    try:
                        await self._handle_message(message)
                    except Exception as e:
                        logger.error(f"Error handling {self.label} message: {e}")

        except ConnectionClosed:
            logger.warning(f"{self.label} connection closed")
        finally:
            self.ws = None

    async def _on_open(self, ws):
        """Hook called right after the connection opens."""

    @abstractmethod
    async def _handle_message(self, message):
        """Handle one raw frame."""

    def _on_close(self):
        """Hook called after every close or failed connection attempt."""
