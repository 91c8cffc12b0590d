"""Reconnecting WebSocket client feeding hub messages to a Reconciler."""

import asyncio
import logging
from typing import Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from src.hub import CONNECTED, PING, PONG, ProtocolError, decode, encode
from src.workspace import WorkspaceError

from .exceptions import SyncClientError
from .reconciler import Reconciler

logger = logging.getLogger(__name__)


class SyncClient:
    """
    Keeps a Reconciler subscribed to the hub.

    Messages are applied strictly in arrival order. After every
    (re)connect the reconciler is resynced, since events sent while the
    connection was down are lost. Reconnects back off exponentially up to
    ``max_backoff`` seconds.
    """

    def __init__(
        self,
        ws_url: str,
        reconciler: Reconciler,
        ping_interval: float = 25.0,
        initial_backoff: float = 0.5,
        max_backoff: float = 30.0,
        on_message: Optional[Callable[[dict], None]] = None,
        connect=None,
    ):
        """
        Initialize the client.

        Args:
            ws_url: Hub URL, e.g. ws://localhost:3000/ws
            reconciler: Model to keep in sync
            ping_interval: Seconds between pings, 0 disables
            initial_backoff: First reconnect delay in seconds
            max_backoff: Reconnect delay cap in seconds
            on_message: Called with every decoded message after it is applied
            connect: Connection factory, defaults to websockets.connect
        """
        self.ws_url = ws_url
        self.reconciler = reconciler
        self.ping_interval = ping_interval
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.on_message = on_message
        self._connect = connect or websockets.connect

        self.connections = 0
        self.last_pong: Optional[int] = None
        self.connected = asyncio.Event()
        self._ws = None
        self._stopping = False
        self._stop_event = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    def backoff_delay(self, attempt: int) -> float:
        return min(self.max_backoff, self.initial_backoff * (2 ** attempt))

    async def run(self) -> None:
        """Connect and process messages until stop() is called."""
        attempt = 0
        while not self._stopping:
            try:
                async with self._connect(self.ws_url) as ws:
                    self._ws = ws
                    self.connections += 1
                    attempt = 0
                    self.connected.set()
                    logger.info(f"Connected to {self.ws_url}")
                    await self._resync()
                    await self._receive(ws)
            except asyncio.CancelledError:
                raise
            except (OSError, ConnectionClosed, InvalidHandshake, asyncio.TimeoutError) as e:
                logger.warning(f"Connection to {self.ws_url} lost: {e}")
            finally:
                self._ws = None
                self.connected.clear()

            if self._stopping:
                break

            delay = self.backoff_delay(attempt)
            attempt += 1
            logger.info(f"Reconnecting in {delay:.1f}s")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info("Sync client stopped")

    async def _resync(self) -> None:
        try:
            await self.reconciler.resync()
        except WorkspaceError as e:
            logger.error(f"Resync after connect failed: {e}")

    async def _receive(self, ws) -> None:
        pinger = None
        if self.ping_interval > 0:
            pinger = asyncio.get_running_loop().create_task(self._ping_loop(ws))
        try:
            async for raw in ws:
                await self._handle(raw)
        finally:
            if pinger is not None:
                pinger.cancel()

    async def _ping_loop(self, ws) -> None:
        try:
            while True:
                await asyncio.sleep(self.ping_interval)
                await ws.send(encode({"type": PING}))
        except ConnectionClosed:
            return

    async def _handle(self, raw) -> None:
        try:
            message = decode(raw)
        except ProtocolError as e:
            logger.warning(f"Ignoring malformed message from hub: {e}")
            return

        msg_type = message["type"]
        if msg_type == PONG:
            self.last_pong = message.get("timestamp")
        elif msg_type == CONNECTED:
            logger.debug(f"Hub greeting: {message.get('message')}")
        else:
            await self.reconciler.apply(message)

        if self.on_message is not None:
            self.on_message(message)

    async def send(self, message: dict) -> None:
        """
        Send a protocol message over the live connection.

        Raises:
            SyncClientError: If not connected
        """
        ws = self._ws
        if ws is None:
            raise SyncClientError("Not connected")
        await ws.send(encode(message))

    async def stop(self) -> None:
        """Stop reconnecting and close the live connection."""
        self._stopping = True
        self._stop_event.set()
        ws = self._ws
        if ws is not None:
            await ws.close()
