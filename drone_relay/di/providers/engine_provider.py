from typing import TYPE_CHECKING
from ...domain.engine.connectivity_engine import ConnectivityEngine
from ...infrastructure.webrtc.aiortc_engine import AiortcEngine

if TYPE_CHECKING:
    from ..base_container import BaseContainer


class EngineProvider:
    """Registers the connectivity engine implementation"""

    @staticmethod
    def register(container: "BaseContainer") -> None:
        container.register_factory(ConnectivityEngine, AiortcEngine)
