"""
Media Relay
===========

Forwards datagrams from the shared ingestion endpoint into the outbound
track of one session. One relay task runs per session generation.
"""
import asyncio
import logging
from typing import Callable

from drone_relay.core.exceptions import RelayError, TrackClosedError
from drone_relay.domain.models.session import Session
from drone_relay.infrastructure.ingest.udp_endpoint import IngestionEndpoint

logger = logging.getLogger(__name__)

FailureCallback = Callable[[Session, str], None]


class MediaRelay:
    """Starts relay tasks bound to a session's track and cancellation signal."""

    def __init__(
        self,
        endpoint: IngestionEndpoint,
        max_consecutive_errors: int = 50,
        poll_interval: float = 0.2,
    ) -> None:
        """
        Initialize media relay.

        Args:
            endpoint: Process-lifetime RTP listener
            max_consecutive_errors: Read failures in a row before escalating
            poll_interval: Longest wait on the endpoint before re-checking cancellation
        """
        self.endpoint = endpoint
        self.max_consecutive_errors = max_consecutive_errors
        self.poll_interval = poll_interval

    def start(self, session: Session, on_failure: FailureCallback) -> asyncio.Task:
        """Start the relay task for a session and attach it to the session."""
        task = asyncio.create_task(
            self.run(session, on_failure),
            name=f"relay-{session.session_id}",
        )
        session.relay_task = task
        return task

    async def run(self, session: Session, on_failure: FailureCallback) -> int:
        """
        Relay loop body.

        Returns:
            Number of datagrams forwarded
        """
        forwarded = 0
        async with self.endpoint.exclusive_reader(session.cancel) as acquired:
            if not acquired:
                logger.info(f"[relay {session.session_id}] Cancelled before reading")
                return forwarded
            logger.info(f"[relay {session.session_id}] ▶️  Relay started")
            consecutive_errors = 0

            while not session.cancelled:
                try:
                    data = await self.endpoint.read(self.poll_interval)
                except RelayError as e:
                    consecutive_errors += 1
                    logger.warning(f"[relay {session.session_id}] ⚠️  Read error: {e}")
                    if consecutive_errors >= self.max_consecutive_errors:
                        logger.error(
                            f"[relay {session.session_id}] ❌ {consecutive_errors} read errors in a row, "
                            f"escalating to session reset"
                        )
                        on_failure(session, f"relay read failed {consecutive_errors} times")
                        break
                    continue

                if data is None:
                    continue
                consecutive_errors = 0

                if session.cancelled:
                    break
                try:
                    session.track.write(data)
                except TrackClosedError:
                    logger.info(f"[relay {session.session_id}] Track closed, peer connection gone")
                    break
                except RelayError as e:
                    logger.warning(f"[relay {session.session_id}] ⚠️  Write error: {e}")
                    continue
                forwarded += 1

        logger.info(f"[relay {session.session_id}] 🛑 Relay stopped after {forwarded} datagrams")
        return forwarded
