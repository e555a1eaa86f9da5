from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Hashable
from dataclasses import dataclass, replace
from queue import Empty, Full, Queue
from threading import Event, Lock, Thread
from typing import Any

from peer_chat.events import AppEvent, StateChangedEvent

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


@dataclass
class BusStats:
    published: int = 0
    delivered: int = 0
    coalesced: int = 0
    retried: int = 0
    dropped: int = 0
    handler_failures: int = 0
    fallback_logged: int = 0


def _coalesce_key(event: AppEvent) -> Hashable | None:
    if isinstance(event, StateChangedEvent) and not event.critical:
        return (event.change, event.contact_id)
    return None


class EventBus:
    """Fan-out of state notifications to UI subscribers.

    Events are queued by the publisher and delivered either by a background
    worker (``start``) or synchronously by whoever calls ``drain``. Handlers
    only ever read state; they never mutate the chat store.

    A state change identical to one still waiting in the queue is folded into
    it, since subscribers re-read the store anyway. Notices are never folded.
    """

    def __init__(
        self,
        maxsize: int = 512,
        publish_timeout_seconds: float = 0.1,
        critical_publish_retries: int = 2,
        critical_handler_retries: int = 1,
    ):
        self._queue: Queue[AppEvent] = Queue(maxsize=maxsize)
        self._publish_timeout_seconds = publish_timeout_seconds
        self._publish_retries = max(0, critical_publish_retries)
        self._handler_retries = max(0, critical_handler_retries)
        self._subscribers: dict[type[AppEvent], list[Handler]] = defaultdict(list)
        self._pending: set[Hashable] = set()
        self._lock = Lock()
        self._running = Event()
        self._worker: Thread | None = None
        self.stats = BusStats()

    def subscribe(self, event_type: type[AppEvent], handler: Handler) -> None:
        with self._lock:
            self._subscribers[event_type].append(handler)

    def unsubscribe(self, event_type: type[AppEvent], handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: AppEvent, *, critical: bool = False) -> bool:
        event.critical = event.critical or critical
        key = _coalesce_key(event)
        with self._lock:
            if key is not None:
                if key in self._pending:
                    self.stats.coalesced += 1
                    return True
                self._pending.add(key)
        attempts = 1 + (self._publish_retries if event.critical else 0)
        # Without a worker nobody frees space, so waiting is pointless.
        block = self._running.is_set()
        for attempt in range(attempts):
            try:
                self._queue.put(
                    event, block=block, timeout=self._publish_timeout_seconds
                )
            except Full:
                if attempt + 1 < attempts:
                    self.stats.retried += 1
                    continue
                break
            self.stats.published += 1
            return True
        with self._lock:
            self._pending.discard(key)
        self.stats.dropped += 1
        logger.warning(
            "Notification queue full; dropped %s from %s", event.topic, event.source
        )
        return False

    def drain(self, limit: int | None = None) -> int:
        """Deliver queued events on the calling thread; returns how many."""
        count = 0
        while limit is None or count < limit:
            try:
                event = self._queue.get_nowait()
            except Empty:
                break
            self._deliver(event)
            count += 1
        return count

    def start(self) -> None:
        if self._running.is_set():
            return
        self._running.set()
        self._worker = Thread(target=self._work, name="peer-chat-events", daemon=True)
        self._worker.start()

    def stop(self, timeout_seconds: float = 2.0) -> None:
        self._running.clear()
        if self._worker is not None:
            self._worker.join(timeout=timeout_seconds)
            self._worker = None

    def _work(self) -> None:
        while self._running.is_set() or not self._queue.empty():
            try:
                event = self._queue.get(timeout=0.1)
            except Empty:
                continue
            self._deliver(event)

    def _deliver(self, event: AppEvent) -> None:
        with self._lock:
            self._pending.discard(_coalesce_key(event))
            handlers = [
                handler
                for event_type, registered in self._subscribers.items()
                if isinstance(event, event_type)
                for handler in registered
            ]
        for handler in handlers:
            self._call(handler, event)

    def _call(self, handler: Handler, event: AppEvent) -> None:
        attempts = 1 + (self._handler_retries if event.critical else 0)
        for attempt in range(attempts):
            try:
                handler(event)
            except Exception:
                self.stats.handler_failures += 1
                if attempt + 1 < attempts:
                    event.retry_count += 1
                    self.stats.retried += 1
                    continue
                logger.exception(
                    "Subscriber failed on %s from %s", event.topic, event.source
                )
                return
            self.stats.delivered += 1
            return

    def record_fallback(self) -> None:
        self.stats.fallback_logged += 1

    def snapshot_stats(self) -> BusStats:
        return replace(self.stats)
