from __future__ import annotations

import logging
import threading
from typing import Any, Callable

log = logging.getLogger(__name__)

WILDCARD = "*"


class EventBus:
    """Publish/subscribe channel for player and waveform notifications.

    Handlers are invoked with keyword arguments.  Handlers registered for
    ``"*"`` receive every event with an extra ``event_type`` argument.
    Emission may happen on background threads (extraction worker, progress
    ticker), so the handler table is guarded by a lock and handlers are
    called outside it.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str,
                  handler: Callable[..., Any]) -> Callable[[], None]:
        """Register *handler* and return a callable that removes it again."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return _unsubscribe

    def unsubscribe(self, event_type: str, handler: Callable[..., Any]) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def emit(self, event_type: str, **data: Any) -> None:
        """Fire the handlers for *event_type*, then the wildcard handlers."""
        with self._lock:
            handlers = list(self._handlers.get(event_type, []))
            catch_all = list(self._handlers.get(WILDCARD, []))
        for handler in handlers:
            handler(**data)
        for handler in catch_all:
            handler(event_type=event_type, **data)

    def notify(self, event_type: str, **data: Any) -> None:
        """Like :meth:`emit`, but a failing handler is logged and skipped.

        Used where the emitter must not be disturbed by its observers,
        e.g. the playback controller and its background threads.
        """
        with self._lock:
            handlers = list(self._handlers.get(event_type, []))
            catch_all = list(self._handlers.get(WILDCARD, []))
        calls = [(h, data) for h in handlers]
        calls += [(h, {"event_type": event_type, **data}) for h in catch_all]
        for handler, kwargs in calls:
            try:
                handler(**kwargs)
            except Exception:
                log.exception("Handler %r for %r failed", handler, event_type)
