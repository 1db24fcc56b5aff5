"""Tests for the queue worker's ack / retry / dead-letter decisions."""

import threading

from docqa.core.errors import DependencyError, UnsupportedTypeError, ValidationError
from docqa.ingest.coordinator import HandleOutcome, IngestionResult
from docqa.ingest.worker import Disposition, IngestionWorker
from fakes import FakeQueue


class StubCoordinator:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.bodies: list[str] = []

    def handle(self, body: str) -> IngestionResult:
        self.bodies.append(body)
        if self.error is not None:
            raise self.error
        return IngestionResult(outcome=HandleOutcome.PROCESSED, document_id="d", attempt_id="a", chunk_count=1)


def test_success_is_acked() -> None:
    queue = FakeQueue()
    message = queue.push('{"documentId": "d", "attemptId": "a"}')
    worker = IngestionWorker(queue, StubCoordinator())
    assert worker.handle_message(message) is Disposition.ACKED
    assert queue.acked == [message.message_id]
    assert queue.dead == []


def test_transient_failure_left_for_redelivery() -> None:
    queue = FakeQueue()
    message = queue.push("{}", receive_count=2)
    worker = IngestionWorker(queue, StubCoordinator(DependencyError("s3 down")), max_receive_count=5)
    assert worker.handle_message(message) is Disposition.RETRY
    assert queue.acked == []
    assert queue.dead == []


def test_exhausted_retries_are_dead_lettered() -> None:
    queue = FakeQueue()
    message = queue.push("{}", receive_count=5)
    worker = IngestionWorker(queue, StubCoordinator(DependencyError("s3 down")), max_receive_count=5)
    assert worker.handle_message(message) is Disposition.DEAD_LETTERED
    assert queue.acked == [message.message_id]
    assert "retries exhausted" in queue.dead[0][1]


def test_permanent_failure_is_dead_lettered_immediately() -> None:
    queue = FakeQueue()
    message = queue.push("{}", receive_count=1)
    worker = IngestionWorker(queue, StubCoordinator(UnsupportedTypeError("image/png")))
    assert worker.handle_message(message) is Disposition.DEAD_LETTERED
    assert queue.dead[0][1].startswith("UNSUPPORTED_TYPE")
    assert queue.acked == [message.message_id]


def test_poll_once_counts_dispositions() -> None:
    queue = FakeQueue()
    queue.push("good")
    queue.push("bad")

    class MixedCoordinator(StubCoordinator):
        def handle(self, body: str) -> IngestionResult:
            if body == "bad":
                raise ValidationError("bad body")
            return super().handle(body)

    stats = IngestionWorker(queue, MixedCoordinator()).poll_once()
    assert (stats.received, stats.acked, stats.dead_lettered, stats.retried) == (2, 1, 1, 0)


def test_run_forever_stops_when_event_set() -> None:
    queue = FakeQueue()
    queue.push("one")
    stop = threading.Event()
    coordinator = StubCoordinator()

    class StoppingQueue(FakeQueue):
        def receive(self):
            messages = queue.receive()
            if not messages:
                stop.set()
            return messages

        def ack(self, message):
            queue.ack(message)

    IngestionWorker(StoppingQueue(), coordinator).run_forever(stop)
    assert coordinator.bodies == ["one"]
    assert queue.acked == ["msg-1"]


def test_handle_batch_reports_only_retryable_failures() -> None:
    queue = FakeQueue()

    class BatchCoordinator(StubCoordinator):
        def handle(self, body: str) -> IngestionResult:
            if body == "transient":
                raise DependencyError("openai timeout")
            if body == "permanent":
                raise ValidationError("bad")
            return super().handle(body)

    worker = IngestionWorker(queue, BatchCoordinator(), max_receive_count=3)
    response = worker.handle_batch(
        [
            {"messageId": "m1", "body": "ok", "attributes": {"ApproximateReceiveCount": "1"}},
            {"messageId": "m2", "body": "transient", "attributes": {"ApproximateReceiveCount": "1"}},
            {"messageId": "m3", "body": "permanent", "attributes": {"ApproximateReceiveCount": "1"}},
            {"messageId": "m4", "body": "transient", "attributes": {"ApproximateReceiveCount": "3"}},
        ]
    )
    assert response == {"batchItemFailures": [{"itemIdentifier": "m2"}]}
    assert [message.message_id for message, _ in queue.dead] == ["m3", "m4"]
    assert queue.acked == []
