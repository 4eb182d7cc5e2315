"""Event registration and dispatch for parsed log events."""

import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Events emitted while parsing. Block derived events carry a MatchLogEntry.
EVENT_NAMES = (
    "gamestate-changed",
    "game-start",
    "game-over",
    "game-tag-change",
    "player-joined",
    "turn-change",
    "zone-change",
    "tag-change",
    "mulligan-start",
    "mulligan-result",
    "discovery-start",
    "discovery-end",
    "choice-id",
    "card-played",
    "attack",
    "trigger",
)


class EventEmitter:
    """Routes named events to registered handlers.

    Handlers that raise are logged and skipped so one bad subscriber can't
    stop the log from being parsed.

    Example:
        emitter.register_handler("card-played", lambda entry: print(entry))
        emitter.register_any_handler(lambda name, payload: print(name))
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[[Any], None]]] = {}
        self._any_handlers: list[Callable[[str, Any], None]] = []

    def register_handler(self, event_name: str, handler: Callable[[Any], None]) -> None:
        """Register a handler for a specific event.

        Args:
            event_name: Event name (e.g., 'card-played').
            handler: Callback receiving the event payload (None for simple events).
        """
        if event_name not in EVENT_NAMES:
            logger.warning(f"Registering handler for unknown event {event_name!r}")
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler for {event_name}")

    def register_any_handler(self, handler: Callable[[str, Any], None]) -> None:
        """Register a handler called with (event_name, payload) for every event."""
        self._any_handlers.append(handler)

    def remove_handler(self, event_name: str, handler: Callable[[Any], None]) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, payload: Optional[Any] = None) -> None:
        """Emit an event to the handlers registered for it and to catch-all handlers."""
        for any_handler in list(self._any_handlers):
            try:
                any_handler(event_name, payload)
            except Exception as e:
                logger.error(f"Handler error for {event_name}: {e}", exc_info=True)

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(payload)
            except Exception as e:
                logger.error(f"Handler error for {event_name}: {e}", exc_info=True)
