"""Event broker for live reload.

The broker lets the watcher publish rebuild events and lets HTTP clients
subscribe to them. A single control thread owns the subscriber registry:
``subscribe``, ``unsubscribe`` and ``publish`` only post messages to its
mailbox, so the registry is never touched from another thread.

Each subscription has a bounded channel. Delivery never blocks the control
loop; an event that does not fit in a stalled subscriber's channel is dropped
for that subscriber only. Events published before a client subscribes are
not replayed.

Key classes:
- EventBroker: The broker and its control thread.
- Subscription: One client's id and event channel.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from collections.abc import Iterator
from dataclasses import dataclass

logger = logging.getLogger(__name__)

REBUILD_EVENT = "rebuild"
DEFAULT_CHANNEL_SIZE = 16

_CLOSED = object()


class Subscription:
    """A client's interest in broker events.

    Attributes:
        id: Unique, monotonically increasing subscription id.
        closed: Set once the broker has closed the channel and the reader saw it.
    """

    def __init__(self, id: int, channel_size: int = DEFAULT_CHANNEL_SIZE):
        self.id = id
        self.closed = False
        self._channel: queue.Queue = queue.Queue(maxsize=channel_size)

    def get(self, timeout: float | None = None) -> str | None:
        """Wait for the next event.

        Returns:
            The event, or None once the subscription has been closed.

        Raises:
            queue.Empty: If ``timeout`` expires first.
        """
        if self.closed:
            return None
        item = self._channel.get(timeout=timeout)
        if item is _CLOSED:
            self.closed = True
            return None
        return item

    def __iter__(self) -> Iterator[str]:
        """Yield events until the subscription is closed."""
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def _deliver(self, event: str) -> bool:
        try:
            self._channel.put_nowait(event)
        except queue.Full:
            return False
        return True

    def _close(self) -> None:
        # Make room for the end-of-stream marker; pending events are discarded.
        while True:
            try:
                self._channel.put_nowait(_CLOSED)
                return
            except queue.Full:
                try:
                    self._channel.get_nowait()
                except queue.Empty:
                    pass


@dataclass(frozen=True)
class _Subscribe:
    subscription: Subscription


@dataclass(frozen=True)
class _Unsubscribe:
    id: int


@dataclass(frozen=True)
class _Publish:
    event: str


@dataclass(frozen=True)
class _Count:
    reply: queue.Queue


class _Stop:
    pass


class EventBroker:
    """Publish/subscribe hub for rebuild events.

    The control thread starts with the broker and runs for the life of the
    process unless ``stop`` is called.
    """

    def __init__(self, channel_size: int = DEFAULT_CHANNEL_SIZE):
        self._channel_size = channel_size
        self._mailbox: queue.Queue = queue.Queue()
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run, name="stheno-broker", daemon=True
        )
        self._thread.start()

    def subscribe(self) -> Subscription:
        """Register a new subscription and return it without waiting."""
        with self._ids_lock:
            id = next(self._ids)
        subscription = Subscription(id, self._channel_size)
        self._mailbox.put(_Subscribe(subscription))
        return subscription

    def unsubscribe(self, id: int) -> None:
        """Close and forget the subscription ``id``. Unknown ids are ignored."""
        self._mailbox.put(_Unsubscribe(id))

    def publish(self, event: str = REBUILD_EVENT) -> None:
        """Deliver ``event`` to every subscription registered at this point."""
        self._mailbox.put(_Publish(event))

    def subscriber_count(self, timeout: float | None = None) -> int:
        """Number of registered subscriptions, as seen by the control loop."""
        reply: queue.Queue = queue.Queue(maxsize=1)
        self._mailbox.put(_Count(reply))
        return reply.get(timeout=timeout)

    def stop(self, timeout: float | None = None) -> None:
        """Close every subscription and end the control loop."""
        self._mailbox.put(_Stop())
        self._thread.join(timeout)

    def _run(self) -> None:
        subscribers: dict[int, Subscription] = {}
        while True:
            message = self._mailbox.get()
            if isinstance(message, _Subscribe):
                subscribers[message.subscription.id] = message.subscription
            elif isinstance(message, _Unsubscribe):
                subscription = subscribers.pop(message.id, None)
                if subscription is not None:
                    subscription._close()
            elif isinstance(message, _Publish):
                for subscription in subscribers.values():
                    if not subscription._deliver(message.event):
                        logger.debug(
                            "subscriber %d is not reading; dropped %r",
                            subscription.id,
                            message.event,
                        )
            elif isinstance(message, _Count):
                message.reply.put(len(subscribers))
            elif isinstance(message, _Stop):
                for subscription in subscribers.values():
                    subscription._close()
                subscribers.clear()
                return
