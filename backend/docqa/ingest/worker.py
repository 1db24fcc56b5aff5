"""Queue consumer driving the ingestion coordinator.

Delivery is at-least-once. A message is acknowledged only after the
coordinator returns. Failures are left on the queue for redelivery unless
the error cannot succeed on retry or the message has already been received
``max_receive_count`` times; those are dead-lettered and acknowledged.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

from docqa.core.errors import error_code_for, is_retryable
from docqa.core.logging import get_logger, log_context
from docqa.core.metrics import DEAD_LETTERED
from docqa.ingest.coordinator import IngestionCoordinator
from docqa.ingest.queue import MessageQueue, QueueMessage

logger = get_logger(__name__)

IDLE_BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 30.0


class Disposition(str, Enum):
    ACKED = "acked"
    RETRY = "retry"
    DEAD_LETTERED = "dead_lettered"


@dataclass(slots=True)
class PollStats:
    received: int = 0
    acked: int = 0
    retried: int = 0
    dead_lettered: int = 0

    def record(self, disposition: Disposition) -> None:
        if disposition is Disposition.ACKED:
            self.acked += 1
        elif disposition is Disposition.RETRY:
            self.retried += 1
        else:
            self.dead_lettered += 1


class IngestionWorker:
    def __init__(
        self,
        queue: MessageQueue,
        coordinator: IngestionCoordinator,
        max_receive_count: int = 5,
    ) -> None:
        self.queue = queue
        self.coordinator = coordinator
        self.max_receive_count = max_receive_count

    def dispose(self, message: QueueMessage) -> Disposition:
        """Run the coordinator for one message and decide its fate without acking."""
        context = log_context(message_id=message.message_id, receive_count=message.receive_count)
        try:
            self.coordinator.handle(message.body)
        except Exception as exc:
            code = error_code_for(exc)
            if not is_retryable(exc):
                reason = f"{code}: {exc}"
            elif message.receive_count >= self.max_receive_count:
                reason = f"retries exhausted after {message.receive_count} receives ({code}: {exc})"
            else:
                logger.warning("Leaving message for redelivery: %s", exc, extra=context)
                return Disposition.RETRY
            self.queue.dead_letter(message, reason)
            DEAD_LETTERED.labels(reason=code).inc()
            logger.error("Dead-lettered message: %s", reason, extra=context)
            return Disposition.DEAD_LETTERED
        return Disposition.ACKED

    def handle_message(self, message: QueueMessage) -> Disposition:
        disposition = self.dispose(message)
        if disposition is not Disposition.RETRY:
            self.queue.ack(message)
            logger.info(
                "Message acknowledged",
                extra=log_context(message_id=message.message_id, disposition=disposition.value),
            )
        return disposition

    def poll_once(self) -> PollStats:
        stats = PollStats()
        messages = self.queue.receive()
        stats.received = len(messages)
        for message in messages:
            try:
                stats.record(self.handle_message(message))
            except Exception as exc:
                # ack or dead-letter transport failed; visibility timeout brings it back
                logger.error(
                    "Queue bookkeeping failed: %s",
                    exc,
                    extra=log_context(message_id=message.message_id),
                )
                stats.retried += 1
        return stats

    def run_forever(self, stop: threading.Event | None = None) -> None:
        stop = stop or threading.Event()
        backoff = IDLE_BACKOFF_SECONDS
        logger.info("Worker started, polling for messages")
        while not stop.is_set():
            try:
                stats = self.poll_once()
            except Exception as exc:
                logger.error("Queue receive failed, backing off %.1fs: %s", backoff, exc)
                stop.wait(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF_SECONDS)
                continue
            backoff = IDLE_BACKOFF_SECONDS
            if stats.received:
                logger.info(
                    "Batch complete",
                    extra=log_context(
                        received=stats.received,
                        acked=stats.acked,
                        retried=stats.retried,
                        dead_lettered=stats.dead_lettered,
                    ),
                )
        logger.info("Worker stopped")

    def handle_batch(self, records: Iterable[Mapping[str, Any]]) -> dict[str, list[dict[str, str]]]:
        """Process trigger-delivered records and report partial batch failures.

        Records use the SQS event shape (``messageId``, ``body``,
        ``attributes.ApproximateReceiveCount``). Only records that should be
        redelivered are reported back.
        """
        failures: list[dict[str, str]] = []
        for record in records:
            message = QueueMessage(
                message_id=str(record.get("messageId", "")),
                body=record.get("body") or "",
                receipt_handle=record.get("receiptHandle"),
                receive_count=int((record.get("attributes") or {}).get("ApproximateReceiveCount", 1)),
            )
            try:
                disposition = self.dispose(message)
            except Exception as exc:
                logger.error(
                    "Could not dispose of message: %s",
                    exc,
                    extra=log_context(message_id=message.message_id),
                )
                disposition = Disposition.RETRY
            if disposition is Disposition.RETRY:
                failures.append({"itemIdentifier": message.message_id})
        logger.info("Batch handled", extra=log_context(failed=len(failures)))
        return {"batchItemFailures": failures}


__all__ = ["Disposition", "PollStats", "IngestionWorker"]
