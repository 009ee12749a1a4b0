from typing import TYPE_CHECKING
from ...api.signaling_handlers import SignalingController
from ...application.services.media_relay import MediaRelay
from ...application.services.session_manager import PeerSessionManager
from ...core.config import Settings
from ...domain.engine.connectivity_engine import ConnectivityEngine
from ...infrastructure.ingest.udp_endpoint import IngestionEndpoint
from ...infrastructure.signaling.signaling_channel import SignalingChannel

if TYPE_CHECKING:
    from ..base_container import BaseContainer


class SessionProvider:
    """
    Registers the media relay, the session manager and the signaling controller.
    Built lazily: the session manager needs the engine and channel first.
    """

    @staticmethod
    def register(container: "BaseContainer") -> None:
        settings = container.get(Settings)

        container.register_factory(
            MediaRelay,
            lambda: MediaRelay(
                endpoint=container.get(IngestionEndpoint),
                max_consecutive_errors=settings.relay_max_consecutive_errors,
            )
        )
        container.register_factory(
            PeerSessionManager,
            lambda: PeerSessionManager(
                engine=container.get(ConnectivityEngine),
                channel=container.get(SignalingChannel),
                relay=container.get(MediaRelay),
                drone_id=settings.drone_id,
                ice_servers=settings.ice_servers(),
                create_attempts=settings.session_create_attempts,
                create_backoff=settings.session_create_backoff_sec,
            )
        )
        container.register_factory(
            SignalingController,
            lambda: SignalingController(
                channel=container.get(SignalingChannel),
                session_manager=container.get(PeerSessionManager),
            )
        )
