# Standard library imports
from typing import Optional

# Local application imports
from drone_relay.core.config import Settings, get_settings
from .base_container import BaseContainer
from .providers import (
    EngineProvider,
    IngestProvider,
    SessionProvider,
    SignalingProvider,
)


class DIContainer(BaseContainer):
    """
    Main dependency injection container.
    Composes all providers in the correct order.

    Registration order is important:
    1. Settings
    2. Engine and ingestion endpoint (IngestProvider, EngineProvider)
    3. Dispatch registry and signaling channel (SignalingProvider)
    4. Media relay, session manager, signaling controller (SessionProvider)
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        super().__init__()
        self.setup(settings or get_settings())

    def setup(self, settings: Settings) -> None:
        """
        Setup dependency registrations by composing all providers.
        Order matters: settings → leaves → signaling → session
        """
        self.register_singleton(Settings, settings)

        IngestProvider.register(self)
        EngineProvider.register(self)
        SignalingProvider.register(self)
        SessionProvider.register(self)
