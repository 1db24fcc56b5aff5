"""Best-effort fan-out of document lifecycle events over Redis pub/sub."""

from __future__ import annotations

from typing import Any, Callable, Iterator, Protocol

import redis

from docqa.core.logging import get_logger, log_context
from docqa.models.entities import DocumentStatus
from docqa.models.messages import StatusEvent, parse_status_event, status_channel

logger = get_logger(__name__)


class PubSubClient(Protocol):
    def publish(self, channel: str, message: str) -> Any: ...


class RedisConnection:
    """Redis client created on first use from a URL."""

    def __init__(self, url: str, factory: Callable[[str], Any] | None = None) -> None:
        self.url = url
        self._factory = factory or (lambda u: redis.Redis.from_url(u, decode_responses=True))
        self._client: Any | None = None

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._factory(self.url)
        return self._client

    def publish(self, channel: str, message: str) -> Any:
        return self.client.publish(channel, message)

    def pubsub(self) -> Any:
        return self.client.pubsub(ignore_subscribe_messages=True)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class StatusPublisher:
    """Publishes ``document.status.changed`` events on per-user channels.

    Publishing never raises: a missing or failing pub/sub connection only
    costs the real-time notification, never the ingestion outcome.
    """

    def __init__(self, client: PubSubClient | None) -> None:
        self.client = client

    def publish(
        self,
        user_id: str,
        document_id: str,
        status: DocumentStatus,
        attempt_id: str | None = None,
    ) -> bool:
        if self.client is None:
            logger.debug(
                "No pub/sub configured, skipping status publish",
                extra=log_context(document_id=document_id, status=status.value),
            )
            return False
        try:
            event = StatusEvent(documentId=document_id, userId=user_id, status=status, attemptId=attempt_id)
            channel = status_channel(user_id)
            self.client.publish(channel, event.to_json())
        except Exception as exc:
            logger.warning(
                "Status publish failed: %s",
                exc,
                extra=log_context(document_id=document_id, status=status.value),
            )
            return False
        logger.info(
            "Published status",
            extra=log_context(document_id=document_id, status=status.value, channel=channel),
        )
        return True


class StatusSubscriber:
    """Yields validated status events for one user; malformed payloads are dropped."""

    def __init__(self, connection: RedisConnection) -> None:
        self.connection = connection

    def events(self, user_id: str, timeout: float = 1.0) -> Iterator[StatusEvent]:
        pubsub = self.connection.pubsub()
        pubsub.subscribe(status_channel(user_id))
        try:
            while True:
                message = pubsub.get_message(timeout=timeout)
                if message is None:
                    continue
                event = decode_status_message(message)
                if event is not None:
                    yield event
        finally:
            pubsub.close()


def decode_status_message(message: dict[str, Any]) -> StatusEvent | None:
    if message.get("type") != "message":
        return None
    event = parse_status_event(message.get("data"))
    if event is None:
        logger.debug("Discarding malformed status event", extra=log_context(channel=message.get("channel")))
    return event


def build_status_publisher(redis_url: str | None) -> StatusPublisher:
    return StatusPublisher(RedisConnection(redis_url) if redis_url else None)


__all__ = [
    "PubSubClient",
    "RedisConnection",
    "StatusPublisher",
    "StatusSubscriber",
    "decode_status_message",
    "build_status_publisher",
]
