"""
Signaling Channel
=================

Persistent websocket connection to the signaling server.
Owns connect, the read/dispatch loop, the heartbeat and close.
"""
import asyncio
import logging
from typing import Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from drone_relay.application.dispatch_registry import DispatchRegistry
from drone_relay.core.exceptions import ConnectError, ProtocolDecodeError, SendError
from drone_relay.domain.models.envelope import Envelope, Tag


logger = logging.getLogger(__name__)


class SignalingChannel:
    """
    Client side of the signaling websocket.

    Every writer (heartbeat, handlers, engine callbacks) goes through
    emit(), which holds one write lock so frames never interleave.
    Inbound frames are dispatched one at a time, in arrival order, on the
    read loop task.
    """

    def __init__(
        self,
        url: str,
        registry: DispatchRegistry,
        heartbeat_interval: float = 20.0,
    ) -> None:
        """
        Initialize signaling channel.

        Args:
            url: ws:// or wss:// URL of the signaling server
            registry: Handlers for inbound channels
            heartbeat_interval: Seconds between clientsOnline frames
        """
        self.url = url
        self.registry = registry
        self.heartbeat_interval = heartbeat_interval
        self.ws = None
        self._write_lock = asyncio.Lock()
        self._read_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._closing = False
        self._read_loop_done = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        return self.ws is not None and not self._closing and not self._read_loop_done.is_set()

    async def connect(self) -> None:
        """
        Dial the signaling server and start the read loop and heartbeat.

        Raises:
            ConnectError: Server unreachable or handshake rejected
        """
        if self.ws is not None:
            raise ConnectError("Signaling channel already connected", {"url": self.url})

        logger.info(f"[channel] 🔌 Connecting to signaling server: {self.url}")
        try:
            self.ws = await websockets.connect(
                self.url,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise ConnectError("Could not connect to signaling server", {"url": self.url, "error": str(e)}) from e

        logger.info("[channel] ✅ Connected to signaling server")
        self._read_task = asyncio.create_task(self._read_loop(), name="signaling-read")
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="signaling-heartbeat")

    async def emit(self, tag: Union[str, Tag], payload: str = "") -> None:
        """
        Encode and write one envelope.

        Raises:
            SendError: Transport not connected or closed
        """
        envelope = Envelope(tag, payload)
        frame = envelope.encode()
        async with self._write_lock:
            if self.ws is None or self._closing:
                raise SendError("Signaling channel is closed", {"channel": envelope.tag})
            try:
                await self.ws.send(frame)
            except ConnectionClosed as e:
                raise SendError("Signaling channel is closed", {"channel": envelope.tag, "error": str(e)}) from e

    async def _read_loop(self) -> None:
        try:
            async for raw in self.ws:
                try:
                    envelope = Envelope.decode(raw)
                except ProtocolDecodeError as e:
                    logger.warning(f"[channel] ⚠️  Dropping undecodable frame: {e}")
                    continue

                await self.registry.dispatch(envelope)
            if not self._closing:
                logger.warning("[channel] 🔌 Signaling server closed the connection")
        except ConnectionClosed as e:
            if not self._closing:
                logger.error(f"[channel] ❌ Signaling connection lost: {e}")
        finally:
            self._read_loop_done.set()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.emit(Tag.CLIENTS_ONLINE, "")
            except SendError as e:
                logger.warning(f"[channel] ⚠️  Heartbeat failed, stopping heartbeat: {e}")
                return

    async def wait_closed(self) -> None:
        """Wait until the read loop has ended (server gone or close())."""
        await self._read_loop_done.wait()

    async def close(self) -> None:
        """
        Stop the read loop and heartbeat, then close the websocket.

        No handler runs after this returns. Calling it again is a no-op.
        """
        if self._closing:
            return
        self._closing = True

        tasks = [
            task for task in (self._heartbeat_task, self._read_task)
            if task is not None and task is not asyncio.current_task()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self.ws is not None:
            try:
                await self.ws.close()
            except Exception as e:
                logger.warning(f"[channel] ⚠️  Error closing websocket: {e}")
        self._read_loop_done.set()
        logger.info("[channel] 🛑 Disconnected from signaling server")
