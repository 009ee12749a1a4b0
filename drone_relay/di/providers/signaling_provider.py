from typing import TYPE_CHECKING
from ...application.dispatch_registry import DispatchRegistry
from ...core.config import Settings
from ...infrastructure.signaling.signaling_channel import SignalingChannel

if TYPE_CHECKING:
    from ..base_container import BaseContainer


class SignalingProvider:
    """Registers the dispatch registry and the signaling channel"""

    @staticmethod
    def register(container: "BaseContainer") -> None:
        settings = container.get(Settings)
        registry = DispatchRegistry()
        container.register_singleton(DispatchRegistry, registry)
        container.register_factory(
            SignalingChannel,
            lambda: SignalingChannel(
                url=settings.signaling_url,
                registry=registry,
                heartbeat_interval=settings.heartbeat_interval_sec,
            )
        )
