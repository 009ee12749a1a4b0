"""
Signaling Controller
====================

Inbound channel handlers. Each handler receives the envelope payload and
either replies on the channel or drives the session manager. Raising marks
the dispatch as failed; the registry logs it and the read loop continues.
"""
import logging

from drone_relay.application.dispatch_registry import DispatchRegistry
from drone_relay.application.services.session_manager import PeerSessionManager
from drone_relay.domain.models.envelope import Tag

logger = logging.getLogger(__name__)

GREETING = "Hello from drone"


class SignalingController:
    """Binds signaling channels to drone behavior."""

    def __init__(self, channel, session_manager: PeerSessionManager) -> None:
        self.channel = channel
        self.session_manager = session_manager

    def register(self, registry: DispatchRegistry) -> None:
        """Register every handler on the registry."""
        registry.register(Tag.CONNECTED, self.on_connected)
        registry.register(Tag.BEGIN, self.on_begin)
        registry.register(Tag.CLIENTS_ONLINE, self.on_clients_online)
        registry.register(Tag.MSG, self.on_message)
        registry.register(Tag.MESSAGE, self.on_message)
        registry.register(Tag.ICE_CANDIDATE, self.on_ice_candidate)
        registry.register(Tag.DESCRIPTION, self.on_description)
        registry.register(Tag.DISCONNECT, self.on_disconnect)

    async def on_connected(self, payload: str) -> None:
        await self.channel.emit(Tag.CONNECTED, GREETING)

    async def on_begin(self, payload: str) -> None:
        logger.info("[drone] 🎬 Viewer matched, sending offer")
        await self.session_manager.request_offer()

    def on_clients_online(self, payload: str) -> None:
        logger.debug(f"[drone] Clients online: {payload or '?'}")

    def on_message(self, payload: str) -> None:
        logger.info(f"[drone] 💬 Message recv: {payload}")

    async def on_ice_candidate(self, payload: str) -> None:
        await self.session_manager.handle_remote_candidate(payload)

    async def on_description(self, payload: str) -> None:
        await self.session_manager.handle_remote_description(payload)

    async def on_disconnect(self, payload: str) -> None:
        logger.info("[drone] 🔌 Received disconnect request")
        await self.session_manager.reset("remote disconnect")
