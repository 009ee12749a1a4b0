"""
Dispatch Registry
=================

Maps a signaling channel to its handler, decoupling the transport from
session logic.
"""
import inspect
import logging
from typing import Awaitable, Callable, Dict, Optional, Union

from drone_relay.domain.models.envelope import Envelope, Tag

logger = logging.getLogger(__name__)

Handler = Callable[[str], Union[None, Awaitable[None]]]


class DispatchRegistry:
    """
    Channel -> handler registry.

    Handlers take the envelope payload. A handler signals failure by raising;
    the registry logs the failure and never lets it reach the read loop.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {}

    @staticmethod
    def _key(tag: Union[str, Tag]) -> str:
        return tag.value if isinstance(tag, Tag) else tag

    def register(self, tag: Union[str, Tag], handler: Handler) -> None:
        """Register a handler, replacing any previous one for the channel."""
        key = self._key(tag)
        if not key:
            raise ValueError("Channel cannot be empty")
        if key in self:
            logger.debug(f"[dispatch] Replacing handler for '{key}'")
        self._handlers[key] = handler

    def get(self, tag: Union[str, Tag]) -> Optional[Handler]:
        return self._handlers.get(self._key(tag))

    def __contains__(self, tag: Union[str, Tag]) -> bool:
        return self._key(tag) in self._handlers

    async def dispatch(self, envelope: Envelope) -> bool:
        """
        Invoke the handler registered for the envelope's channel.

        Returns:
            True if a handler ran and succeeded, False if there was no
            handler or the handler failed
        """
        handler = self._handlers.get(envelope.tag)
        if handler is None:
            logger.debug(f"[dispatch] No handler for '{envelope.tag}', ignoring")
            return False

        try:
            result = handler(envelope.payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"[dispatch] ⚠️  Handler for '{envelope.tag}' failed: {e}")
            logger.debug("[dispatch] Handler traceback", exc_info=True)
            return False
        return True
