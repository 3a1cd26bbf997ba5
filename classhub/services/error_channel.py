# classhub/services/error_channel.py
import logging
from collections import defaultdict
from typing import Callable, DefaultDict, List, Set, Type

LOGGER = logging.getLogger(__name__)

Handler = Callable[[Exception], None]


class ReentrantEmitError(RuntimeError):
    """A handler emitted on the topic that is currently being dispatched."""


class ErrorChannel:
    """
    Publish/subscribe bus for error events.

    Topics are event types: handlers registered for PermissionErrorEvent
    receive every emitted PermissionErrorEvent. One channel lives as long
    as the session that owns it and is handed to producers and listeners
    explicitly.

    emit() is synchronous and does not buffer: events with no listeners
    are dropped, handler exceptions reach the caller of emit(). A handler
    may not emit on the topic it is handling.
    """

    def __init__(self):
        self._handlers: DefaultDict[Type[Exception], List[Handler]] = defaultdict(list)
        self._dispatching: Set[Type[Exception]] = set()

    def on(self, topic: Type[Exception], handler: Handler):
        self._handlers[topic].append(handler)

    def off(self, topic: Type[Exception], handler: Handler):
        handlers = self._handlers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, topic: Type[Exception]) -> int:
        return len(self._handlers.get(topic, ()))

    def emit(self, event: Exception):
        topic = type(event)
        if topic in self._dispatching:
            raise ReentrantEmitError(f"emit() on {topic.__name__} while it is being dispatched")

        handlers = list(self._handlers.get(topic, ()))
        if not handlers:
            LOGGER.debug("No listeners for %s, dropping event", topic.__name__)
            return

        self._dispatching.add(topic)
        try:
            for handler in handlers:
                handler(event)
        finally:
            self._dispatching.discard(topic)
