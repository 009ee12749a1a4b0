"""
Session Model
=============

One generation of a peer connection together with its outbound track,
its cancellation signal and its relay task.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from drone_relay.domain.engine.connectivity_engine import LocalTrack, PeerConnectionHandle

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Session manager state machine states."""
    INITIALIZING = "INITIALIZING"  # Building a new session
    ACTIVE = "ACTIVE"  # Session live, relay running
    RESTARTING = "RESTARTING"  # Tearing down before re-initializing
    CLOSED = "CLOSED"  # No session


def new_session_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(eq=False)
class Session:
    """
    Represents one session generation.

    A session is never reused: once closed it is discarded and a new one
    is built from scratch.
    """
    connection: PeerConnectionHandle
    track: LocalTrack
    session_id: str = field(default_factory=new_session_id)
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    relay_task: Optional[asyncio.Task] = None
    closed: bool = False
    _teardown: Optional[asyncio.Future] = field(default=None, init=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    async def close(self) -> bool:
        """
        Tear the session down.

        Sets the cancellation signal, waits for the relay task to exit, then
        releases the track and the connection. The teardown runs in its own
        task: cancelling the caller does not interrupt it, and a later call
        waits for the same teardown.

        Returns:
            True if this call started the teardown, False if already closing
        """
        first = self._teardown is None
        if first:
            self.closed = True
            logger.info(f"[session {self.session_id}] 🛑 Closing")
            self.cancel.set()
            join_relay = self.relay_task is not asyncio.current_task()
            self._teardown = asyncio.ensure_future(self._release(join_relay))
        await asyncio.shield(self._teardown)
        return first

    async def _release(self, join_relay: bool) -> None:
        # Join barrier: the next relay must not read before this one exits
        task = self.relay_task
        if task is not None and join_relay:
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
            except Exception as e:
                logger.error(f"[session {self.session_id}] ❌ Relay task failed: {e}")

        self.track.stop()
        try:
            await self.connection.close()
        except Exception as e:
            logger.error(f"[session {self.session_id}] ⚠️  Error closing connection: {e}")

        logger.info(f"[session {self.session_id}] ✅ Closed")
