"""In-process domain event bus"""

import logging
from collections import defaultdict
from typing import Callable, DefaultDict, Iterable, List, Type

logger = logging.getLogger(__name__)

Handler = Callable[[object], None]


class EventBus:
    """
    Synchronous publish/subscribe.

    Handlers run in the publisher's call stack (and therefore inside its
    database transaction); an exception from a handler propagates to the
    publisher so the whole unit of work rolls back together.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[Type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: object) -> None:
        handlers = self._handlers.get(type(event), [])
        logger.debug("Publishing %s to %d handler(s)", type(event).__name__, len(handlers))
        for handler in handlers:
            handler(event)

    def publish_all(self, events: Iterable[object]) -> None:
        for event in events:
            self.publish(event)
