from typing import TYPE_CHECKING
from ...core.config import Settings
from ...infrastructure.ingest.udp_endpoint import IngestionEndpoint

if TYPE_CHECKING:
    from ..base_container import BaseContainer


class IngestProvider:
    """Registers the process-lifetime RTP ingestion endpoint"""

    @staticmethod
    def register(container: "BaseContainer") -> None:
        settings = container.get(Settings)
        container.register_singleton(
            IngestionEndpoint,
            IngestionEndpoint(
                host=settings.ingest_host,
                port=settings.ingest_port,
                recv_buffer=settings.ingest_recv_buffer,
                max_datagram_size=settings.max_datagram_size,
            )
        )
