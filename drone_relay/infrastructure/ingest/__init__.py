from drone_relay.infrastructure.ingest.udp_endpoint import IngestionEndpoint

__all__ = [
    "IngestionEndpoint",
]
