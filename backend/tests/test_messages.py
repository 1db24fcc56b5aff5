"""Tests for queue and status payload parsing."""

import orjson
import pytest

from docqa.core.errors import ValidationError
from docqa.models.entities import DocumentStatus
from docqa.models.messages import (
    StatusEvent,
    parse_ingestion_message,
    parse_status_event,
    status_channel,
)


def test_parse_ingestion_message() -> None:
    message = parse_ingestion_message('{"documentId": "doc_1", "attemptId": "att_1", "extra": true}')
    assert message.document_id == "doc_1"
    assert message.attempt_id == "att_1"
    assert orjson.loads(message.to_json()) == {"documentId": "doc_1", "attemptId": "att_1"}


@pytest.mark.parametrize(
    "body",
    [
        None,
        "",
        "   ",
        "not json",
        "[1, 2]",
        '{"documentId": "doc_1"}',
        '{"attemptId": "att_1"}',
        '{"documentId": " ", "attemptId": "att_1"}',
    ],
)
def test_malformed_ingestion_messages_are_validation_errors(body) -> None:
    with pytest.raises(ValidationError):
        parse_ingestion_message(body)


def test_status_event_wire_format() -> None:
    event = StatusEvent(documentId="doc_1", userId="user-1", status=DocumentStatus.READY)
    payload = orjson.loads(event.to_json())
    assert payload["type"] == "document.status.changed"
    assert payload["status"] == "READY"
    assert "attemptId" not in payload
    assert payload["ts"].endswith("Z")
    assert status_channel("user-1") == "docqa:user:user-1:document-status"


def test_parse_status_event_discards_garbage() -> None:
    valid = StatusEvent(documentId="doc_1", userId="u", status=DocumentStatus.FAILED, attemptId="att_1")
    parsed = parse_status_event(valid.to_json())
    assert parsed is not None
    assert parsed.attempt_id == "att_1"
    assert parse_status_event("{") is None
    assert parse_status_event('"text"') is None
    assert parse_status_event('{"type": "other", "documentId": "d", "userId": "u", "status": "READY"}') is None
    assert parse_status_event('{"documentId": "d", "userId": "u", "status": "DONE"}') is None
    assert parse_status_event('{"documentId": "d", "userId": "u", "status": "READY", "ts": "yesterday"}') is None
