from wa_proxy.models import Attachment, AttachmentKind, MessageStatus
from wa_proxy.queue_store import QueueStore


class TestEnqueue:
    def test_enqueue_returns_unique_ids_in_arrival_order(self):
        store = QueueStore()
        first = store.enqueue("+966501234567", "one")
        second = store.enqueue("+966501234568", "two")

        assert first != second
        assert store.pending_ids() == [first, second]
        assert len(store) == 2
        assert store.get(first).status is MessageStatus.PENDING
        assert store.get(first).retry_count == 0

    def test_enqueue_keeps_attachment(self):
        store = QueueStore()
        att = Attachment(AttachmentKind.IMAGE, "/tmp/a.jpg", "a.jpg")
        msg_id = store.enqueue("+966501234567", "caption", att)

        record = store.get(msg_id)
        assert record.attachment is att
        assert record.caption == "caption"


class TestDequeue:
    def test_dequeue_marks_sending_and_occupies_slot(self):
        store = QueueStore()
        first = store.enqueue("a", "1")
        store.enqueue("b", "2")

        record = store.dequeue_next_eligible()
        assert record.id == first
        assert record.status is MessageStatus.SENDING
        assert store.in_flight is record
        assert store.status_counts() == {"pending": 1, "in_flight": 1}

    def test_second_dequeue_returns_none_while_in_flight(self):
        """Only one record may be in the Sending state."""
        store = QueueStore()
        store.enqueue("a", "1")
        store.enqueue("b", "2")

        assert store.dequeue_next_eligible() is not None
        assert store.dequeue_next_eligible() is None
        assert not store.has_eligible()

    def test_dequeue_empty_store(self):
        store = QueueStore()
        assert store.dequeue_next_eligible() is None
        assert not store.has_eligible()


class TestRequeueRestore:
    def test_requeue_moves_record_to_tail(self):
        store = QueueStore()
        first = store.enqueue("a", "1")
        second = store.enqueue("b", "2")

        record = store.dequeue_next_eligible()
        store.requeue(record)

        assert store.in_flight is None
        assert store.pending_ids() == [second, first]
        assert record.status is MessageStatus.PENDING

    def test_restore_moves_record_to_head(self):
        store = QueueStore()
        first = store.enqueue("a", "1")
        second = store.enqueue("b", "2")

        record = store.dequeue_next_eligible()
        store.restore(record)

        assert store.pending_ids() == [first, second]
        assert record.retry_count == 0
        assert store.dequeue_next_eligible().id == first

    def test_requeue_twice_does_not_duplicate(self):
        store = QueueStore()
        store.enqueue("a", "1")
        record = store.dequeue_next_eligible()
        store.requeue(record)
        store.requeue(record)

        assert store.pending_ids() == [record.id]


class TestRemoveAndClear:
    def test_remove_in_flight_record(self):
        store = QueueStore()
        msg_id = store.enqueue("a", "1")
        record = store.dequeue_next_eligible()

        assert store.remove(msg_id) is record
        assert store.in_flight is None
        assert len(store) == 0

    def test_remove_pending_record(self):
        store = QueueStore()
        store.enqueue("a", "1")
        second = store.enqueue("b", "2")

        assert store.remove(second).id == second
        assert second not in store.pending_ids()

    def test_remove_unknown_id(self, caplog):
        store = QueueStore()
        assert store.remove("missing") is None
        assert "not found" in caplog.text

    def test_clear_leaves_in_flight_record(self):
        store = QueueStore()
        store.enqueue("a", "1")
        store.enqueue("b", "2")
        store.enqueue("c", "3")
        in_flight = store.dequeue_next_eligible()

        assert store.clear() == 2
        assert store.in_flight is in_flight
        assert store.status_counts() == {"pending": 0, "in_flight": 1}
        assert store.get(in_flight.id) is in_flight
