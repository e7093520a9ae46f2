from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

EventCallback = Callable[..., None]


class Events:
    """
    Canonical event names, so publishers and subscribers can't drift apart on a typo.
    """
    DATA_LOADED = "data:loaded"
    DATA_UPDATED = "data:updated"
    DATA_ERROR = "data:error"

    UI_FILTER_CHANGED = "ui:filter:changed"
    FILTER_APPLIED = "filter:applied"

    CHART_REFRESH_NEEDED = "chart:refresh:needed"

    PERFORMANCE_MEASURE = "performance:measure"
    PERFORMANCE_WARNING = "performance:warning"

    BATCH_PROGRESS = "batch:progress"


@dataclass(frozen=True)
class _Subscriber:
    callback: EventCallback
    context: Any
    bound: EventCallback


class EventBus:
    """
    Synchronous in-process publish/subscribe broker.

    Design Notes:
    - One explicit instance is injected into the store and the controller; there is no module-level singleton
    - publish() iterates a snapshot of the subscriber list, so callbacks may subscribe/unsubscribe while
      an event is being dispatched
    - Subscribers are isolated: an exception raised by one callback is logged and delivery continues
      with the next one. Nothing propagates back to the publisher
    - Fire-and-forget: no retry, no cross-event ordering, no durable log
    """

    def __init__(self) -> None:
        self._events: Dict[str, List[_Subscriber]] = {}

    def subscribe(
        self,
        event_name: str,
        callback: EventCallback,
        context: Any = None,
    ) -> Callable[[], None]:
        """
        Register a callback for an event.

        :param event_name: the event to listen for
        :param callback: called with the published data
        :param context: optional object the callback is bound to, i.e. called as callback(context, data)
        :return: a zero-argument function that removes this subscription
        """
        bound = functools.partial(callback, context) if context is not None else callback
        sub = _Subscriber(callback=callback, context=context, bound=bound)
        self._events.setdefault(event_name, []).append(sub)
        logger.debug("Subscribed", extra={"event": event_name})

        return lambda: self._remove(event_name, lambda s: s is sub)

    def unsubscribe(self, event_name: str, callback: EventCallback, context: Any = None) -> None:
        """Remove the first subscription matching callback + context. Unknown pairs are ignored."""
        self._remove(event_name, lambda s: s.callback == callback and s.context is context)

    def _remove(self, event_name: str, matches: Callable[[_Subscriber], bool]) -> None:
        subscribers = self._events.get(event_name)
        if not subscribers:
            return

        for i, sub in enumerate(subscribers):
            if matches(sub):
                del subscribers[i]
                logger.debug("Unsubscribed", extra={"event": event_name})
                break

        if not subscribers:
            self._events.pop(event_name, None)

    def once(self, event_name: str, callback: EventCallback, context: Any = None) -> Callable[[], None]:
        """Subscribe for a single delivery; the subscription is removed before the callback runs."""

        def _once(*args: Any) -> None:
            unsubscribe()
            callback(*args)

        unsubscribe = self.subscribe(event_name, _once, context)
        return unsubscribe

    def publish(self, event_name: str, data: Any = None) -> None:
        """
        Deliver data to every subscriber of event_name, in subscription order.
        """
        subscribers = self._events.get(event_name)
        if not subscribers:
            logger.debug("No subscribers", extra={"event": event_name})
            return

        for sub in list(subscribers):
            try:
                sub.bound(data)
            except Exception:
                logger.exception("Error in subscriber for '%s'", event_name)

    async def publish_async(self, event_name: str, data: Any = None) -> None:
        """Same as publish(), dispatched on the next event loop tick."""
        await asyncio.sleep(0)
        self.publish(event_name, data)

    def clear(self, event_name: Optional[str] = None) -> None:
        """Remove all subscribers of one event, or of every event when event_name is None."""
        if event_name is not None:
            self._events.pop(event_name, None)
        else:
            self._events.clear()

    def subscriber_count(self, event_name: str) -> int:
        return len(self._events.get(event_name, ()))

    def event_names(self) -> List[str]:
        return list(self._events.keys())
