"""
Drone Relay Process
===================

Entry point wiring the drone together.
Starts: Ingestion endpoint → Signaling channel → Session manager

Startup sequence:
1. Load and validate settings (fatal on error)
2. Configure logging
3. Open the UDP ingestion endpoint
4. Connect to the signaling server (fatal on error)
5. Register channel handlers
6. Start the session manager (creates and announces the first session)
7. Run until SIGINT/SIGTERM or until the signaling connection is lost
"""
import asyncio
import logging
import signal
import sys
from typing import Optional

from drone_relay.api.signaling_handlers import SignalingController
from drone_relay.application.dispatch_registry import DispatchRegistry
from drone_relay.application.services.session_manager import PeerSessionManager
from drone_relay.core.config import Settings, get_settings
from drone_relay.core.exceptions import ConfigError, DroneRelayError
from drone_relay.core.logging import setup_logging
from drone_relay.di.container import DIContainer
from drone_relay.infrastructure.ingest.udp_endpoint import IngestionEndpoint
from drone_relay.infrastructure.signaling.signaling_channel import SignalingChannel

logger = logging.getLogger("drone_relay")

EXIT_OK = 0
EXIT_CHANNEL_LOST = 1
EXIT_CONFIG_ERROR = 2


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))


async def serve(container: DIContainer, stop_event: Optional[asyncio.Event] = None) -> int:
    """
    Run the drone until stopped.

    Args:
        container: Wired dependencies
        stop_event: Set to request shutdown; SIGINT/SIGTERM handlers are
                    installed when not provided

    Returns:
        Process exit status
    """
    if stop_event is None:
        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)

    endpoint: IngestionEndpoint = container.get(IngestionEndpoint)
    channel: SignalingChannel = container.get(SignalingChannel)
    registry: DispatchRegistry = container.get(DispatchRegistry)
    manager: PeerSessionManager = container.get(PeerSessionManager)
    controller: SignalingController = container.get(SignalingController)

    await endpoint.open()
    try:
        await channel.connect()
        controller.register(registry)
        await manager.start()
        logger.info("[drone] ✅ Drone relay running")

        stop_wait = asyncio.create_task(stop_event.wait(), name="stop-signal")
        channel_wait = asyncio.create_task(channel.wait_closed(), name="channel-closed")
        done, pending = await asyncio.wait(
            {stop_wait, channel_wait}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if channel_wait in done and not stop_event.is_set():
            logger.error("[drone] ❌ Signaling connection lost, shutting down")
            return EXIT_CHANNEL_LOST

        logger.info("[drone] 🛑 Shutdown requested")
        return EXIT_OK
    finally:
        await manager.stop()
        await channel.close()
        endpoint.close()
        logger.info("[drone] 👋 Drone relay stopped")


async def main(settings: Optional[Settings] = None) -> int:
    """Validate settings, build the container and serve."""
    try:
        settings = settings or get_settings()
        settings.validate()
    except (ConfigError, ValueError) as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"[drone] ❌ Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    setup_logging(settings.log_level)
    logger.info(f"[drone] 🚀 Starting drone '{settings.drone_id}' -> {settings.signaling_url}")

    container = DIContainer(settings)
    try:
        return await serve(container)
    except DroneRelayError as e:
        logger.error(f"[drone] ❌ Startup failed: {e}")
        return EXIT_CHANNEL_LOST


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
