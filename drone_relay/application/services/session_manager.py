"""
Peer Session Manager
====================

Owns the single active session and drives it:
- Creation with bounded retry and backoff
- Offer / answer / candidate exchange over the signaling channel
- Reset on failure (close the current session, build a fresh one)

Every mutation runs on one command worker. Engine callbacks and signaling
handlers never touch the session directly; they post commands onto the
queue. Commands produced by the engine carry the id of the session that
produced them and are dropped once that session is no longer current.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, List, Optional

from drone_relay.application.services.media_relay import MediaRelay
from drone_relay.core.exceptions import EngineError, SendError
from drone_relay.domain.engine.connectivity_engine import (
    CodecDescriptor,
    ConnectivityEngine,
    ConnectivityState,
    EngineConfig,
)
from drone_relay.domain.models.envelope import Tag
from drone_relay.domain.models.payloads import (
    Announcement,
    CandidatePayload,
    SessionDescriptionPayload,
    decode_candidate,
    decode_description,
    encode_payload,
)
from drone_relay.domain.models.session import Session, SessionState, new_session_id

logger = logging.getLogger(__name__)


class CommandKind(str, Enum):
    CREATE = "create"
    OFFER = "offer"
    RESTART_ICE = "restart_ice"
    REMOTE_DESCRIPTION = "remote_description"
    REMOTE_CANDIDATE = "remote_candidate"
    EMIT_CANDIDATE = "emit_candidate"
    RESET = "reset"


@dataclass
class SessionCommand:
    """
    One unit of work for the command worker.

    session_id pins the command to a session generation; None means
    "whatever session is current when the command runs".
    """
    kind: CommandKind
    session_id: Optional[str] = None
    payload: Any = None
    reason: str = ""
    future: Optional[asyncio.Future] = None


class PeerSessionManager:
    """
    Session lifecycle state machine.

    INITIALIZING -> ACTIVE -> (RESTARTING -> INITIALIZING ...) -> CLOSED
    """

    def __init__(
        self,
        engine: ConnectivityEngine,
        channel,
        relay: MediaRelay,
        drone_id: str,
        ice_servers: Optional[List[dict]] = None,
        codec: Optional[CodecDescriptor] = None,
        create_attempts: int = 5,
        create_backoff: float = 0.5,
    ) -> None:
        """
        Initialize session manager.

        Args:
            engine: Connectivity engine used to build connections and tracks
            channel: Signaling channel (anything with an async emit(tag, payload))
            relay: Media relay started for every new session
            drone_id: Id announced on the match channel
            ice_servers: ICE servers passed to every connection
            codec: Outbound track codec
            create_attempts: Attempts per session creation before giving up
            create_backoff: Delay before the second attempt, doubled each time
        """
        self.engine = engine
        self.channel = channel
        self.relay = relay
        self.drone_id = drone_id
        self.engine_config = EngineConfig(ice_servers=list(ice_servers or []))
        self.codec = codec or CodecDescriptor()
        self.create_attempts = max(1, create_attempts)
        self.create_backoff = create_backoff

        self._session: Optional[Session] = None
        self._state = SessionState.CLOSED
        self._generation = 0
        self._reset_count = 0
        self._retiring: List[Session] = []
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    @property
    def generation(self) -> int:
        """Number of sessions created so far."""
        return self._generation

    @property
    def reset_count(self) -> int:
        return self._reset_count

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> Session:
        """
        Start the command worker and create the first session.

        Raises:
            EngineError: No session could be created within the retry budget
        """
        if self.is_running:
            raise EngineError("Session manager already running")

        self._loop = asyncio.get_running_loop()
        self._worker = asyncio.create_task(self._run_commands(), name="session-commands")

        session = await self._submit(SessionCommand(CommandKind.CREATE))
        if session is None:
            await self.stop()
            raise EngineError(
                "Could not create initial session",
                {"attempts": self.create_attempts},
            )
        return session

    async def stop(self) -> None:
        """Stop the command worker and close the current session."""
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)

        # Fail anything still queued so no caller waits forever
        while not self._queue.empty():
            command = self._queue.get_nowait()
            if command.future is not None and not command.future.done():
                command.future.set_exception(EngineError("Session manager stopped"))

        # Sessions detached by an interrupted reset are closed here too
        sessions = list(self._retiring)
        if self._session is not None:
            sessions.append(self._session)
        self._retiring = []
        self._session = None
        for session in sessions:
            await session.close()
        self._state = SessionState.CLOSED
        logger.info("[session] 🛑 Session manager stopped")

    # ------------------------------------------------------------------
    # Signaling-facing operations (awaited by dispatch handlers)
    # ------------------------------------------------------------------

    async def request_offer(self) -> bool:
        """Create an offer, send it on the description channel, commit it locally."""
        return await self._submit(SessionCommand(CommandKind.OFFER))

    async def handle_remote_description(self, payload: str) -> bool:
        """
        Commit a description received from the viewer.

        Raises:
            ProtocolDecodeError: Payload is not a session description
        """
        description = decode_description(payload)
        return await self._submit(SessionCommand(CommandKind.REMOTE_DESCRIPTION, payload=description))

    async def handle_remote_candidate(self, payload: str) -> None:
        """
        Hand a candidate received from the viewer to the engine.

        Raises:
            ProtocolDecodeError: Payload is not a candidate
            EngineError: The engine rejected the candidate
        """
        candidate = decode_candidate(payload)
        await self._submit(SessionCommand(CommandKind.REMOTE_CANDIDATE, payload=candidate))

    async def reset(self, reason: str = "requested") -> Optional[Session]:
        """Close the current session and create a replacement."""
        return await self._submit(SessionCommand(CommandKind.RESET, reason=reason))

    # ------------------------------------------------------------------
    # Command queue
    # ------------------------------------------------------------------

    async def _submit(self, command: SessionCommand) -> Any:
        if not self.is_running:
            raise EngineError("Session manager is not running", {"command": command.kind.value})
        command.future = asyncio.get_running_loop().create_future()
        await self._queue.put(command)
        return await command.future

    def _post(self, command: SessionCommand) -> None:
        """Enqueue a command from any thread without waiting for it."""
        loop = self._loop
        if loop is None or not self.is_running:
            logger.debug(f"[session] Dropping {command.kind.value}, manager not running")
            return
        try:
            loop.call_soon_threadsafe(self._queue.put_nowait, command)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"[session] Dropping {command.kind.value}, event loop closed")

    async def _run_commands(self) -> None:
        while True:
            command = await self._queue.get()
            try:
                result = await self._execute(command)
            except asyncio.CancelledError:
                if command.future is not None and not command.future.done():
                    command.future.set_exception(EngineError("Session manager stopped"))
                raise
            except Exception as e:
                if command.future is not None and not command.future.done():
                    command.future.set_exception(e)
                else:
                    logger.error(f"[session] ❌ Command {command.kind.value} failed: {e}")
            else:
                if command.future is not None and not command.future.done():
                    command.future.set_result(result)

    def _is_stale(self, command: SessionCommand) -> bool:
        if command.session_id is None:
            return False
        current = self._session
        return current is None or current.session_id != command.session_id

    async def _execute(self, command: SessionCommand) -> Any:
        if self._is_stale(command):
            logger.debug(
                f"[session] Ignoring {command.kind.value} from retired session {command.session_id}"
            )
            return None

        kind = command.kind
        if kind == CommandKind.CREATE:
            return await self._create_session()
        elif kind == CommandKind.OFFER:
            return await self._offer_flow(ice_restart=False)
        elif kind == CommandKind.RESTART_ICE:
            return await self._offer_flow(ice_restart=True)
        elif kind == CommandKind.REMOTE_DESCRIPTION:
            return await self._apply_remote_description(command.payload)
        elif kind == CommandKind.REMOTE_CANDIDATE:
            return await self._apply_remote_candidate(command.payload)
        elif kind == CommandKind.EMIT_CANDIDATE:
            return await self._emit_candidate(command.payload)
        elif kind == CommandKind.RESET:
            return await self._reset(command.reason)
        raise EngineError("Unknown session command", {"kind": str(kind)})

    # ------------------------------------------------------------------
    # Engine callbacks (any thread)
    # ------------------------------------------------------------------

    def _on_connectivity_state(self, session_id: str, state: ConnectivityState) -> None:
        logger.info(f"[session {session_id}] 🔄 Connectivity state: {state.value}")
        if state == ConnectivityState.FAILED:
            self._post(SessionCommand(CommandKind.RESET, session_id=session_id, reason="connectivity failed"))
        elif state == ConnectivityState.DISCONNECTED:
            self._post(SessionCommand(CommandKind.RESTART_ICE, session_id=session_id))

    def _on_candidate_discovered(self, session_id: str, candidate: CandidatePayload) -> None:
        self._post(SessionCommand(CommandKind.EMIT_CANDIDATE, session_id=session_id, payload=candidate))

    def _on_relay_failure(self, session: Session, reason: str) -> None:
        self._post(SessionCommand(CommandKind.RESET, session_id=session.session_id, reason=reason))

    # ------------------------------------------------------------------
    # Worker-side operations
    # ------------------------------------------------------------------

    async def _create_session(self) -> Optional[Session]:
        """Build a session, retrying with backoff. Returns None when all attempts fail."""
        self._state = SessionState.INITIALIZING
        delay = self.create_backoff

        for attempt in range(1, self.create_attempts + 1):
            try:
                session = await self._build_session()
            except Exception as e:
                logger.error(
                    f"[session] ❌ Session creation failed (attempt {attempt}/{self.create_attempts}): {e}"
                )
                if attempt < self.create_attempts:
                    await asyncio.sleep(delay)
                    delay *= 2
                continue

            self._session = session
            self._generation += 1
            self._state = SessionState.ACTIVE
            logger.info(f"[session {session.session_id}] ✅ Session created (generation {self._generation})")
            await self._announce(session)
            return session

        self._state = SessionState.CLOSED
        logger.error("[session] ❌ Giving up on session creation, waiting for the next request")
        return None

    async def _build_session(self) -> Session:
        connection = self.engine.create_connection(self.engine_config)
        session_id = new_session_id()
        try:
            connection.on_connectivity_state_changed(partial(self._on_connectivity_state, session_id))
            connection.on_candidate_discovered(partial(self._on_candidate_discovered, session_id))
            track = self.engine.create_local_track(self.codec)
            await connection.add_track(track)
        except BaseException:
            try:
                await connection.close()
            except Exception as close_error:
                logger.warning(f"[session] ⚠️  Error closing half-built connection: {close_error}")
            raise

        session = Session(connection=connection, track=track, session_id=session_id)
        self.relay.start(session, on_failure=self._on_relay_failure)
        return session

    async def _announce(self, session: Session) -> None:
        announcement = Announcement(type="drone", id=self.drone_id)
        try:
            await self.channel.emit(Tag.MATCH, encode_payload(announcement))
            logger.info(f"[session {session.session_id}] 📤 Announced as drone '{self.drone_id}'")
        except SendError as e:
            logger.error(f"[session {session.session_id}] ⚠️  Could not announce session: {e}")

    async def _ensure_session(self) -> Session:
        if self._session is not None:
            return self._session
        session = await self._reset("no active session")
        if session is None:
            raise EngineError("No active session")
        return session

    async def _offer_flow(self, ice_restart: bool) -> bool:
        """
        Offer -> emit -> commit, aborting on the first failing step.

        Any failure resets the session instead of carrying on against a
        connection already known to be broken.
        """
        session = await self._ensure_session()
        label = "ICE restart offer" if ice_restart else "offer"
        step = "create"
        try:
            offer = await session.connection.create_offer(ice_restart=ice_restart)
            step = "emit"
            await self.channel.emit(Tag.DESCRIPTION, encode_payload(offer))
            step = "commit"
            await session.connection.set_local_description(offer)
        except Exception as e:
            logger.error(f"[session {session.session_id}] ❌ {label} failed at {step}: {e}")
            await self._reset(f"{label} failed at {step}")
            return False

        logger.info(f"[session {session.session_id}] 📤 Sent {label}")
        return True

    async def _apply_remote_description(self, description: SessionDescriptionPayload) -> bool:
        session = await self._ensure_session()
        try:
            await session.connection.set_remote_description(description)
        except Exception as e:
            logger.error(f"[session {session.session_id}] ❌ Remote {description.type} rejected: {e}")
            await self._reset("remote description rejected")
            return False
        logger.info(f"[session {session.session_id}] ✅ Remote {description.type} applied")
        return True

    async def _apply_remote_candidate(self, candidate: CandidatePayload) -> None:
        session = await self._ensure_session()
        try:
            await session.connection.add_remote_candidate(candidate)
        except EngineError:
            raise
        except Exception as e:
            raise EngineError("Remote candidate rejected", {"error": str(e)}) from e
        logger.debug(f"[session {session.session_id}] 🧊 Added remote candidate")

    async def _emit_candidate(self, candidate: CandidatePayload) -> None:
        try:
            await self.channel.emit(Tag.ICE_CANDIDATE, encode_payload(candidate))
        except SendError as e:
            logger.warning(f"[session] ⚠️  Could not send local candidate: {e}")

    async def _reset(self, reason: str) -> Optional[Session]:
        """
        Close the current session and create a replacement.

        Runs only on the command worker, so resets never overlap; a second
        failure report for the retired session is dropped as stale.
        """
        self._state = SessionState.RESTARTING
        self._reset_count += 1
        logger.warning(f"[session] 🔄 Resetting session: {reason}")

        old, self._session = self._session, None
        if old is not None:
            self._retiring.append(old)
            await old.close()
            self._retiring.remove(old)

        return await self._create_session()
