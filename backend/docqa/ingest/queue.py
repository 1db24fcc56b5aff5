"""Ingestion queue adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from docqa.core.config import Settings
from docqa.core.errors import DependencyError
from docqa.core.logging import get_logger, log_context

logger = get_logger(__name__)


@dataclass(slots=True)
class QueueMessage:
    message_id: str
    body: str
    receipt_handle: str | None = None
    receive_count: int = 1


class MessageQueue(Protocol):
    def receive(self) -> list[QueueMessage]: ...

    def ack(self, message: QueueMessage) -> None: ...

    def send(self, body: str) -> None: ...

    def dead_letter(self, message: QueueMessage, reason: str) -> bool: ...


class SQSQueue:
    """SQS queue with long-poll receive; the boto3 client is created on first use."""

    def __init__(
        self,
        queue_url: str,
        region: str,
        endpoint_url: str | None = None,
        dlq_url: str | None = None,
        max_messages: int = 5,
        wait_time_seconds: int = 20,
        visibility_timeout_seconds: int = 60,
        access_key: str | None = None,
        secret_key: str | None = None,
    ) -> None:
        self.queue_url = queue_url
        self.dlq_url = dlq_url
        self.region = region
        self.endpoint_url = endpoint_url
        self.max_messages = max_messages
        self.wait_time_seconds = wait_time_seconds
        self.visibility_timeout_seconds = visibility_timeout_seconds
        self._access_key = access_key
        self._secret_key = secret_key
        self._client: Any | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SQSQueue":
        if not settings.sqs_queue_url:
            raise DependencyError("sqs_queue_url is not configured", provider="sqs")
        return cls(
            queue_url=settings.sqs_queue_url,
            region=settings.sqs_region,
            endpoint_url=settings.sqs_endpoint_url,
            dlq_url=settings.sqs_dlq_url,
            max_messages=settings.sqs_max_messages,
            wait_time_seconds=settings.sqs_wait_time_seconds,
            visibility_timeout_seconds=settings.sqs_visibility_timeout_seconds,
            access_key=settings.sqs_access_key,
            secret_key=settings.sqs_secret_key,
        )

    @property
    def client(self) -> Any:
        if self._client is None:
            kwargs: dict[str, Any] = {"region_name": self.region}
            if self.endpoint_url:
                kwargs["endpoint_url"] = self.endpoint_url
            if self._access_key and self._secret_key:
                kwargs["aws_access_key_id"] = self._access_key
                kwargs["aws_secret_access_key"] = self._secret_key
            self._client = boto3.client("sqs", **kwargs)
        return self._client

    def receive(self) -> list[QueueMessage]:
        try:
            response = self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=self.max_messages,
                WaitTimeSeconds=self.wait_time_seconds,
                VisibilityTimeout=self.visibility_timeout_seconds,
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError(f"SQS receive failed: {exc}", provider="sqs") from exc
        return [
            QueueMessage(
                message_id=item["MessageId"],
                body=item.get("Body", ""),
                receipt_handle=item.get("ReceiptHandle"),
                receive_count=int(item.get("Attributes", {}).get("ApproximateReceiveCount", 1)),
            )
            for item in response.get("Messages", [])
        ]

    def ack(self, message: QueueMessage) -> None:
        if not message.receipt_handle:
            raise DependencyError(f"Message {message.message_id} has no receipt handle", provider="sqs")
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle)
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError(f"SQS delete failed: {exc}", provider="sqs") from exc

    def send(self, body: str) -> None:
        try:
            self.client.send_message(QueueUrl=self.queue_url, MessageBody=body)
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError(f"SQS send failed: {exc}", provider="sqs") from exc

    def dead_letter(self, message: QueueMessage, reason: str) -> bool:
        if not self.dlq_url:
            logger.error(
                "No dead-letter queue configured; dropping message",
                extra=log_context(message_id=message.message_id, reason=reason, body=message.body),
            )
            return False
        try:
            self.client.send_message(
                QueueUrl=self.dlq_url,
                MessageBody=message.body,
                MessageAttributes={
                    "reason": {"DataType": "String", "StringValue": reason},
                    "sourceMessageId": {"DataType": "String", "StringValue": message.message_id},
                },
            )
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError(f"SQS dead-letter send failed: {exc}", provider="sqs") from exc
        return True


__all__ = ["QueueMessage", "MessageQueue", "SQSQueue"]
