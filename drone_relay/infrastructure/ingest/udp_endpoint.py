"""
Ingestion Endpoint
==================

Process-lifetime UDP listener that receives the local RTP stream
(e.g. from ffmpeg or gstreamer). Created once at startup and shared by
every session generation; a session reset never closes it.
"""
import asyncio
import logging
import socket
from contextlib import asynccontextmanager
from typing import Optional, Tuple, Union

from drone_relay.core.exceptions import RelayError

logger = logging.getLogger(__name__)


class _IngestProtocol(asyncio.DatagramProtocol):
    def __init__(self, endpoint: "IngestionEndpoint") -> None:
        self._endpoint = endpoint

    def datagram_received(self, data: bytes, addr) -> None:
        self._endpoint._push(data)

    def error_received(self, exc: Exception) -> None:
        self._endpoint._push(exc)


class IngestionEndpoint:
    """
    Bounded queue in front of a UDP socket.

    Only one reader may consume it at a time: readers enter
    exclusive_reader() before calling read().
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 5004,
        recv_buffer: int = 300000,
        max_datagram_size: int = 1600,
        queue_size: int = 1024,
    ) -> None:
        self.host = host
        self.port = port
        self.recv_buffer = recv_buffer
        self.max_datagram_size = max_datagram_size
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._reader_lock = asyncio.Lock()
        self._transport: Optional[asyncio.DatagramTransport] = None
        self.address: Optional[Tuple[str, int]] = None
        self.dropped = 0

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    @property
    def reader_active(self) -> bool:
        return self._reader_lock.locked()

    async def open(self) -> None:
        """
        Bind the listener.

        Raises:
            RelayError: The address cannot be bound
        """
        if self._transport is not None:
            return

        loop = asyncio.get_running_loop()
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, self.recv_buffer)
            sock.bind((self.host, self.port))
            sock.setblocking(False)
            self._transport, _ = await loop.create_datagram_endpoint(
                lambda: _IngestProtocol(self), sock=sock
            )
        except OSError as e:
            sock.close()
            raise RelayError(
                "Could not open RTP listener",
                {"host": self.host, "port": self.port, "error": str(e)},
            ) from e

        self.address = sock.getsockname()
        logger.info(f"[ingest] 📡 Listening for RTP on {self.address[0]}:{self.address[1]}")

    def _push(self, item: Union[bytes, Exception]) -> None:
        if self._queue.full():
            # Drop oldest
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self.dropped += 1
            if self.dropped % 500 == 1:
                logger.warning(f"[ingest] ⚠️  Queue full, dropped {self.dropped} datagrams so far")
        self._queue.put_nowait(item)

    async def read(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """
        Return the next datagram.

        Returns:
            Datagram bytes, or None if nothing arrived within timeout

        Raises:
            RelayError: Socket error, or datagram above max_datagram_size
        """
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

        if isinstance(item, Exception):
            raise RelayError("RTP listener read failed", {"error": str(item)}) from item
        if len(item) > self.max_datagram_size:
            raise RelayError(
                "Dropping oversized datagram",
                {"size": len(item), "max": self.max_datagram_size},
            )
        return item

    @asynccontextmanager
    async def exclusive_reader(self, cancel: Optional[asyncio.Event] = None):
        """
        Hold the endpoint as its only reader for the duration of the block.

        Yields True once the reader slot is held, or False if cancel was set
        while still waiting for it.
        """
        acquired = await self._acquire_reader(cancel)
        try:
            yield acquired
        finally:
            if acquired:
                self._reader_lock.release()

    async def _acquire_reader(self, cancel: Optional[asyncio.Event]) -> bool:
        if cancel is None:
            await self._reader_lock.acquire()
            return True
        if cancel.is_set():
            return False

        acquire = asyncio.ensure_future(self._reader_lock.acquire())
        stop = asyncio.ensure_future(cancel.wait())
        keep = False
        try:
            await asyncio.wait({acquire, stop}, return_when=asyncio.FIRST_COMPLETED)
            keep = acquire.done() and not cancel.is_set()
        finally:
            stop.cancel()
            if not acquire.done():
                acquire.cancel()
            await asyncio.gather(acquire, stop, return_exceptions=True)
            if not keep and not acquire.cancelled() and acquire.exception() is None:
                # Slot granted after cancellation: give it back
                self._reader_lock.release()
        return keep

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.info("[ingest] 🛑 RTP listener closed")
