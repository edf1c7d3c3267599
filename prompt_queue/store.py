"""
Queue Store — bounded FIFO of prompts waiting to be dispatched.

Items are appended at the tail and consumed at the head. Every item gets a
`queue-item-<n>` id from a counter that only ever moves forward, so ids are
never reused while the process is alive, even across `clear()`.
"""
from __future__ import annotations

import structlog
from typing import Callable, Optional

from models.schemas import QueueItem

logger = structlog.get_logger()

MAX_SIZE = 10

ChangeListener = Callable[[list[QueueItem]], None]


class QueueStore:
    """Ordered queue items, id generator, and capacity bound."""

    def __init__(self, max_size: int = MAX_SIZE):
        self.max_size = max_size
        self._items: list[QueueItem] = []
        self._next_id = 1
        self._listeners: list[ChangeListener] = []

    # ── Introspection ──────────────────────────────────────

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    @property
    def is_full(self) -> bool:
        return len(self._items) >= self.max_size

    @property
    def next_id(self) -> int:
        return self._next_id

    def items(self) -> list[QueueItem]:
        """Copies of the queued items, head first."""
        return [item.model_copy() for item in self._items]

    def peek(self) -> Optional[QueueItem]:
        return self._items[0].model_copy() if self._items else None

    # ── Display refresh ────────────────────────────────────

    def add_listener(self, listener: ChangeListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self):
        snapshot = self.items()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning("queue_listener_failed", error=str(e))

    # ── Mutations ──────────────────────────────────────────

    def enqueue(self, item: QueueItem) -> Optional[QueueItem]:
        """Append at the tail. Returns None (and logs) when the store is full."""
        if self.is_full:
            logger.warning("queue_full", max_size=self.max_size, text=item.text[:50])
            return None

        entry = item.model_copy(update={"queue_id": f"queue-item-{self._next_id}"})
        self._next_id += 1
        self._items.append(entry)
        logger.info("queue_item_added",
                    queue_id=entry.queue_id,
                    length=len(self._items),
                    text=entry.text[:50])
        self._notify()
        return entry

    def dequeue_head(self) -> Optional[QueueItem]:
        if not self._items:
            return None
        item = self._items.pop(0)
        self._notify()
        return item

    def remove_at(self, index: int) -> Optional[QueueItem]:
        if index < 0 or index >= len(self._items):
            return None
        removed = self._items.pop(index)
        logger.info("queue_item_removed", queue_id=removed.queue_id, index=index)
        self._notify()
        return removed

    def move(self, from_index: int, to_index: int) -> bool:
        """Reorder one item (drag-and-drop in the queue display)."""
        size = len(self._items)
        if not (0 <= from_index < size) or not (0 <= to_index < size):
            return False
        if from_index == to_index:
            return True
        item = self._items.pop(from_index)
        self._items.insert(to_index, item)
        logger.info("queue_item_moved",
                    queue_id=item.queue_id,
                    from_index=from_index,
                    to_index=to_index)
        self._notify()
        return True

    def clear(self):
        self._items = []
        self._notify()
