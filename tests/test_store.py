"""Tests for the bounded queue store."""
import pytest

from models.schemas import QueueItem
from prompt_queue.store import MAX_SIZE, QueueStore


def item(text="hello", icon="💬"):
    return QueueItem(text=text, icon=icon)


class TestQueueStore:
    def test_enqueue_assigns_sequential_ids(self):
        store = QueueStore()
        first = store.enqueue(item("a"))
        second = store.enqueue(item("b"))
        assert first.queue_id == "queue-item-1"
        assert second.queue_id == "queue-item-2"
        assert len(store) == 2

    def test_enqueue_does_not_mutate_input(self):
        store = QueueStore()
        original = item()
        store.enqueue(original)
        assert original.queue_id == ""

    def test_capacity(self):
        store = QueueStore()
        for i in range(MAX_SIZE):
            assert store.enqueue(item(f"p{i}")) is not None
        assert store.is_full
        assert store.enqueue(item("overflow")) is None
        assert len(store) == MAX_SIZE
        assert [i.text for i in store.items()][-1] == f"p{MAX_SIZE - 1}"

    def test_ids_not_reused_after_clear(self):
        store = QueueStore()
        store.enqueue(item("a"))
        store.enqueue(item("b"))
        store.clear()
        assert len(store) == 0
        assert store.enqueue(item("c")).queue_id == "queue-item-3"

    def test_fifo_order(self):
        store = QueueStore()
        for text in ("a", "b", "c"):
            store.enqueue(item(text))
        assert store.dequeue_head().text == "a"
        assert store.peek().text == "b"
        assert store.dequeue_head().text == "b"
        assert store.dequeue_head().text == "c"
        assert store.dequeue_head() is None

    def test_remove_at(self):
        store = QueueStore()
        for text in ("a", "b", "c"):
            store.enqueue(item(text))
        assert store.remove_at(1).text == "b"
        assert [i.text for i in store.items()] == ["a", "c"]
        assert store.remove_at(5) is None
        assert store.remove_at(-1) is None

    def test_move(self):
        store = QueueStore()
        for text in ("a", "b", "c"):
            store.enqueue(item(text))
        assert store.move(2, 0) is True
        assert [i.text for i in store.items()] == ["c", "a", "b"]
        assert store.move(0, 3) is False
        assert [i.text for i in store.items()] == ["c", "a", "b"]

    def test_items_are_copies(self):
        store = QueueStore()
        store.enqueue(item("a"))
        snapshot = store.items()
        snapshot[0].text = "changed"
        assert store.peek().text == "a"

    def test_listeners_notified(self):
        store = QueueStore()
        seen = []
        store.add_listener(lambda items: seen.append(len(items)))
        store.enqueue(item("a"))
        store.enqueue(item("b"))
        store.dequeue_head()
        store.clear()
        assert seen == [1, 2, 1, 0]

    def test_failing_listener_does_not_break_store(self):
        store = QueueStore()

        def boom(_items):
            raise RuntimeError("render failed")

        store.add_listener(boom)
        assert store.enqueue(item("a")) is not None
        assert len(store) == 1

    def test_remove_listener(self):
        store = QueueStore()
        seen = []
        listener = lambda items: seen.append(len(items))
        store.add_listener(listener)
        store.remove_listener(listener)
        store.enqueue(item("a"))
        assert seen == []

    def test_blank_text_rejected_by_model(self):
        with pytest.raises(ValueError):
            QueueItem(text="   ")
