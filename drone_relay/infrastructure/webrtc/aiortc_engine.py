"""
aiortc Engine
=============

Connectivity engine built on aiortc's RTCPeerConnection.
"""
import logging
from typing import List, Set

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCRtpSender,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from drone_relay.core.exceptions import EngineError
from drone_relay.domain.engine.connectivity_engine import (
    CandidateCallback,
    CodecDescriptor,
    ConnectivityEngine,
    ConnectivityState,
    EngineConfig,
    LocalTrack,
    PeerConnectionHandle,
    StateCallback,
)
from drone_relay.domain.models.payloads import CandidatePayload, SessionDescriptionPayload
from drone_relay.infrastructure.webrtc.rtp_relay_track import RtpRelayTrack

logger = logging.getLogger(__name__)

_CANDIDATE_PREFIX = "candidate:"


class AiortcPeerConnection(PeerConnectionHandle):
    """
    Connection capability wrapping one RTCPeerConnection.

    aiortc gathers every local candidate while the local description is
    being committed instead of trickling them, so discovered candidates are
    reported right after set_local_description() returns.
    """

    def __init__(self, pc: RTCPeerConnection) -> None:
        self.pc = pc
        self._state_callbacks: List[StateCallback] = []
        self._candidate_callbacks: List[CandidateCallback] = []
        self._reported: Set[str] = set()

        @pc.on("iceconnectionstatechange")
        async def on_ice_connection_state_change():
            self._notify_state(pc.iceConnectionState)

    def _notify_state(self, raw_state: str) -> None:
        try:
            state = ConnectivityState(raw_state)
        except ValueError:
            logger.debug(f"[engine] Ignoring unknown ICE state: {raw_state}")
            return
        for callback in list(self._state_callbacks):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"[engine] ⚠️  State callback failed: {e}")

    def _report_local_candidates(self) -> None:
        for index, transceiver in enumerate(self.pc.getTransceivers()):
            ice_transport = transceiver.sender.transport.transport
            gatherer = ice_transport.iceGatherer
            ufrag = gatherer.getLocalParameters().usernameFragment
            for candidate in gatherer.getLocalCandidates():
                sdp = f"{_CANDIDATE_PREFIX}{candidate_to_sdp(candidate)}"
                if sdp in self._reported:
                    continue
                self._reported.add(sdp)
                payload = CandidatePayload(
                    candidate=sdp,
                    sdp_mid=transceiver.mid,
                    sdp_mline_index=index,
                    username_fragment=ufrag,
                )
                for callback in list(self._candidate_callbacks):
                    try:
                        callback(payload)
                    except Exception as e:
                        logger.error(f"[engine] ⚠️  Candidate callback failed: {e}")

    async def add_track(self, track: LocalTrack) -> None:
        if not isinstance(track, RtpRelayTrack):
            raise EngineError("Unsupported track type", {"type": type(track).__name__})
        try:
            sender = self.pc.addTrack(track.media_track)
            transceiver = next(t for t in self.pc.getTransceivers() if t.sender == sender)
            capabilities = RTCRtpSender.getCapabilities(track.codec.kind).codecs
            preferred = [
                c for c in capabilities if c.mimeType.lower() == track.codec.mime_type.lower()
            ]
            if not preferred:
                raise EngineError("Codec not supported by aiortc", {"codec": track.codec.mime_type})
            transceiver.setCodecPreferences(preferred)
        except EngineError:
            raise
        except Exception as e:
            raise EngineError("Could not add track", {"error": str(e)}) from e

    async def create_offer(self, ice_restart: bool = False) -> SessionDescriptionPayload:
        if ice_restart:
            raise EngineError("ICE restart is not supported by aiortc")
        try:
            offer = await self.pc.createOffer()
        except Exception as e:
            raise EngineError("Could not create offer", {"error": str(e)}) from e
        return SessionDescriptionPayload(type=offer.type, sdp=offer.sdp)

    async def set_local_description(self, description: SessionDescriptionPayload) -> None:
        try:
            await self.pc.setLocalDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        except Exception as e:
            raise EngineError("Could not set local description", {"error": str(e)}) from e
        self._report_local_candidates()

    async def set_remote_description(self, description: SessionDescriptionPayload) -> None:
        try:
            await self.pc.setRemoteDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        except Exception as e:
            raise EngineError("Could not set remote description", {"error": str(e)}) from e

    async def add_remote_candidate(self, candidate: CandidatePayload) -> None:
        if candidate.is_end_of_candidates:
            return

        sdp = candidate.candidate
        if sdp.startswith(_CANDIDATE_PREFIX):
            sdp = sdp[len(_CANDIDATE_PREFIX):]
        try:
            ice_candidate = candidate_from_sdp(sdp)
            ice_candidate.sdpMid = candidate.sdp_mid
            ice_candidate.sdpMLineIndex = candidate.sdp_mline_index
            await self.pc.addIceCandidate(ice_candidate)
        except Exception as e:
            raise EngineError("Could not add remote candidate", {"error": str(e)}) from e

    def on_connectivity_state_changed(self, callback: StateCallback) -> None:
        self._state_callbacks.append(callback)

    def on_candidate_discovered(self, callback: CandidateCallback) -> None:
        self._candidate_callbacks.append(callback)

    async def close(self) -> None:
        try:
            await self.pc.close()
        except Exception as e:
            raise EngineError("Could not close peer connection", {"error": str(e)}) from e


class AiortcEngine(ConnectivityEngine):
    """Builds aiortc peer connections and RTP relay tracks."""

    def create_connection(self, config: EngineConfig) -> PeerConnectionHandle:
        try:
            ice_servers = [RTCIceServer(**server) for server in config.ice_servers]
            pc = RTCPeerConnection(configuration=RTCConfiguration(iceServers=ice_servers))
        except Exception as e:
            raise EngineError("Could not create peer connection", {"error": str(e)}) from e
        logger.info(f"[engine] 🔗 Created peer connection ({len(ice_servers)} ICE servers)")
        return AiortcPeerConnection(pc)

    def create_local_track(self, codec: CodecDescriptor) -> LocalTrack:
        if codec.mime_type.lower() != "video/vp8":
            raise EngineError("Only VP8 RTP relay is supported", {"codec": codec.mime_type})
        return RtpRelayTrack(codec)
