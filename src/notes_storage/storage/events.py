"""Change notification stream.

Successful writes publish the written note to a ``ChangeStream``. Every
``Subscription`` gets its own unbounded queue and sees every note
published after it was created, in publish order (fan-out). Publishing
never blocks on, or waits for, a subscriber.

A subscription can be consumed as a blocking iterator, as an async
iterator, or by a dispatcher thread started with ``ChangeStream.listen``.
"""

import logging
import queue
import threading
from typing import Callable, List, Optional

import anyio.lowlevel
import anyio.to_thread

from notes_storage.models.schema import Note

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[Note], None]

# Queue marker that wakes consumers blocked on a closed subscription
_CLOSED = object()


class Subscription:
    """One subscriber's view of a ChangeStream.

    Closing (or cancelling) a subscription detaches it from the stream.
    Events still queued are discarded, and a handler attached through
    ``ChangeStream.listen`` is never called again once ``close`` returns.
    """

    def __init__(
        self,
        stream: "ChangeStream",
        poll_interval: float = 0.1,
        backlog_warning_threshold: int = 1000,
    ):
        self._stream = stream
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._closed = threading.Event()
        # Held while a handler runs so close() can wait for it to finish
        self._dispatch_lock = threading.RLock()
        self._poll_interval = poll_interval
        self._backlog_warning_threshold = backlog_warning_threshold
        # Guards _backlog_warned between publisher and consumer threads
        self._backlog_lock = threading.Lock()
        self._backlog_warned = False
        self._thread: Optional[threading.Thread] = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending(self) -> int:
        """Number of events waiting to be consumed."""
        return self._queue.qsize()

    def _offer(self, note: Note) -> None:
        if self.closed:
            return
        self._queue.put_nowait(note)
        with self._backlog_lock:
            backlog = self._queue.qsize()
            if backlog < self._backlog_warning_threshold or self._backlog_warned:
                return
            self._backlog_warned = True
        logger.warning(
            f"Subscriber backlog reached {backlog} events; "
            "is the consumer still reading?"
        )

    def get(self, timeout: Optional[float] = None) -> Optional[Note]:
        """Take the next note.

        Args:
            timeout: Seconds to wait. None waits until a note arrives or the
                subscription is closed.

        Returns:
            The next note, or None on timeout or when closed.
        """
        if self.closed:
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            # Leave the marker for any other blocked consumer
            self._queue.put_nowait(_CLOSED)
            return None
        if self.closed:
            return None
        with self._backlog_lock:
            if self._queue.qsize() < self._backlog_warning_threshold:
                self._backlog_warned = False
        return item

    def close(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        with self._dispatch_lock:
            if self.closed:
                return
            self._closed.set()
        self._stream._unregister(self)
        self._queue.put_nowait(_CLOSED)

    cancel = close

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the dispatcher thread started by ``listen`` to exit."""
        if self._thread is not None:
            self._thread.join(timeout)

    def __iter__(self) -> "Subscription":
        return self

    def __next__(self) -> Note:
        note = self.get()
        if note is None:
            raise StopIteration
        return note

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Note:
        try:
            while not self.closed:
                note = await anyio.to_thread.run_sync(self.get, self._poll_interval)
                await anyio.lowlevel.checkpoint_if_cancelled()
                if note is not None:
                    return note
        except anyio.get_cancelled_exc_class():
            self.close()
            raise
        raise StopAsyncIteration

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def _dispatch(self, handler: ChangeHandler) -> None:
        for note in self:
            with self._dispatch_lock:
                if self.closed:
                    break
                try:
                    handler(note)
                except Exception as e:
                    logger.error(
                        f"Change handler failed for note {note.id}: {e}", exc_info=True
                    )
        logger.debug("Change dispatcher stopped")


class ChangeStream:
    """Broadcasts changed notes to every live subscription."""

    def __init__(self, poll_interval: float = 0.1, backlog_warning_threshold: int = 1000):
        """Initialize the stream.

        Args:
            poll_interval: Seconds an async subscriber waits between
                cancellation checks.
            backlog_warning_threshold: Pending events per subscriber that
                trigger a warning.
        """
        self._poll_interval = poll_interval
        self._backlog_warning_threshold = backlog_warning_threshold
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, note: Note) -> None:
        """Queue ``note`` for every current subscriber. Never blocks."""
        with self._lock:
            # Offering under the lock gives every subscriber the same order
            for subscription in self._subscriptions:
                subscription._offer(note)
            count = len(self._subscriptions)
        logger.debug(f"Published change for note {note.id} to {count} subscribers")

    def subscribe(self) -> Subscription:
        """Create a subscription for events published from now on.

        Subscribing to a closed stream returns a subscription that is
        already closed.
        """
        subscription = Subscription(
            self,
            poll_interval=self._poll_interval,
            backlog_warning_threshold=self._backlog_warning_threshold,
        )
        with self._lock:
            if not self._closed:
                self._subscriptions.append(subscription)
                return subscription
        subscription.close()
        return subscription

    def listen(self, handler: ChangeHandler, name: Optional[str] = None) -> Subscription:
        """Call ``handler`` for every future event on a dispatcher thread.

        Returns:
            The subscription; close or cancel it to stop the handler.
        """
        subscription = self.subscribe()
        thread = threading.Thread(
            target=subscription._dispatch,
            args=(handler,),
            name=name or "notes-storage-listener",
            daemon=True,
        )
        subscription._thread = thread
        thread.start()
        return subscription

    def close(self) -> None:
        """Close every subscription and refuse new ones."""
        with self._lock:
            self._closed = True
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.close()

    def _unregister(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
