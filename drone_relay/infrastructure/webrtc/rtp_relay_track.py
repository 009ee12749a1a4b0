"""
RTP Relay Track
===============

Outbound video track fed with raw RTP datagrams.

Incoming VP8 RTP packets are depayloaded and reassembled into whole frames
(the RTP marker bit closes a frame). Frames are handed to aiortc as encoded
av.Packets, so aiortc only re-packetizes them and never transcodes.
"""
import asyncio
import logging
from fractions import Fraction
from typing import List, Optional, Tuple

from av import Packet
from aiortc import MediaStreamTrack
from aiortc.codecs.vpx import vp8_depayload
from aiortc.mediastreams import MediaStreamError
from aiortc.rtp import RtpPacket

from drone_relay.core.exceptions import RelayError, TrackClosedError
from drone_relay.domain.engine.connectivity_engine import CodecDescriptor, LocalTrack

logger = logging.getLogger(__name__)


class RtpFrameAssembler:
    """Collects VP8 RTP payloads until the marker bit completes a frame."""

    def __init__(self) -> None:
        self._chunks: List[bytes] = []
        self._timestamp: Optional[int] = None
        self.incomplete_frames = 0

    def push(self, datagram: bytes) -> Optional[Tuple[bytes, int]]:
        """
        Add one RTP datagram.

        Returns:
            (frame bytes, RTP timestamp) when the datagram completes a frame,
            otherwise None

        Raises:
            RelayError: Datagram is not a parseable VP8 RTP packet
        """
        try:
            packet = RtpPacket.parse(datagram)
        except ValueError as e:
            raise RelayError("Invalid RTP packet", {"error": str(e)}) from e

        if self._timestamp is not None and packet.timestamp != self._timestamp:
            # Marker of the previous frame was lost
            self.incomplete_frames += 1
            self._chunks = []
        self._timestamp = packet.timestamp

        try:
            self._chunks.append(vp8_depayload(packet.payload))
        except (ValueError, IndexError) as e:
            self._chunks = []
            self._timestamp = None
            raise RelayError("Invalid VP8 payload", {"error": str(e)}) from e

        if not packet.marker:
            return None

        frame = b"".join(self._chunks)
        self._chunks = []
        self._timestamp = None
        return frame, packet.timestamp


class _EncodedVideoTrack(MediaStreamTrack):
    """MediaStreamTrack that yields pre-encoded packets from a queue."""

    kind = "video"

    def __init__(self, queue_size: int) -> None:
        super().__init__()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def put(self, packet: Packet) -> None:
        if self._queue.full():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self.dropped += 1
        self._queue.put_nowait(packet)

    async def recv(self) -> Packet:
        if self.readyState != "live":
            raise MediaStreamError
        packet = await self._queue.get()
        if packet is None:
            raise MediaStreamError
        return packet

    def stop(self) -> None:
        if self.readyState == "live":
            super().stop()
            # Wake a pending recv()
            try:
                self._queue.put_nowait(None)
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self._queue.put_nowait(None)


class RtpRelayTrack(LocalTrack):
    """LocalTrack backed by an aiortc MediaStreamTrack."""

    def __init__(self, codec: CodecDescriptor, queue_size: int = 30) -> None:
        self.codec = codec
        self.time_base = Fraction(1, codec.clock_rate)
        self.media_track = _EncodedVideoTrack(queue_size)
        self._assembler = RtpFrameAssembler()
        self.frames = 0

    @property
    def id(self) -> str:
        return self.media_track.id

    @property
    def ended(self) -> bool:
        return self.media_track.readyState != "live"

    def write(self, data: bytes) -> None:
        if self.ended:
            raise TrackClosedError("Track has ended", {"track": self.id})

        frame = self._assembler.push(data)
        if frame is None:
            return

        payload, timestamp = frame
        packet = Packet(payload)
        packet.pts = timestamp
        packet.time_base = self.time_base
        self.media_track.put(packet)
        self.frames += 1

    def stop(self) -> None:
        self.media_track.stop()
