"""Wire payloads exchanged over the ingestion queue and the status channel."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from pydantic import ValidationError as PydanticValidationError

from docqa.core.errors import ValidationError
from docqa.models.entities import DocumentStatus
from docqa.utils.time import utc_now_iso

STATUS_EVENT_TYPE = "document.status.changed"
CHANNEL_PREFIX = "docqa:user"

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class IngestionMessage(BaseModel):
    """Queue payload ``{"documentId": ..., "attemptId": ...}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    document_id: NonEmptyStr = Field(alias="documentId")
    attempt_id: NonEmptyStr = Field(alias="attemptId")

    def to_json(self) -> str:
        return orjson.dumps(self.model_dump(by_alias=True)).decode("utf-8")


class StatusEvent(BaseModel):
    """Document lifecycle event fanned out on a per-user channel."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["document.status.changed"] = STATUS_EVENT_TYPE
    document_id: NonEmptyStr = Field(alias="documentId")
    user_id: NonEmptyStr = Field(alias="userId")
    status: DocumentStatus
    attempt_id: str | None = Field(default=None, alias="attemptId")
    ts: str = Field(default_factory=utc_now_iso)

    @field_validator("ts")
    @classmethod
    def _check_iso(cls, value: str) -> str:
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError("ts must be an ISO-8601 timestamp") from exc
        return value

    def to_json(self) -> str:
        payload = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        return orjson.dumps(payload).decode("utf-8")


def status_channel(user_id: str) -> str:
    return f"{CHANNEL_PREFIX}:{user_id}:document-status"


def parse_ingestion_message(body: str | bytes | None) -> IngestionMessage:
    """Parse a raw queue body, raising ``ValidationError`` for anything malformed."""
    if body is None or (isinstance(body, (str, bytes)) and not body.strip()):
        raise ValidationError("Queue message has an empty body")
    try:
        raw: Any = orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise ValidationError("Queue message body is not valid JSON") from exc
    if not isinstance(raw, dict):
        raise ValidationError("Queue message body must be a JSON object")
    try:
        return IngestionMessage.model_validate(raw)
    except PydanticValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        raise ValidationError(f"Queue message must include documentId and attemptId ({fields})") from exc


def parse_status_event(raw: str | bytes | None) -> StatusEvent | None:
    """Decode a status event; anything that does not validate yields ``None``."""
    if not raw:
        return None
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return StatusEvent.model_validate(data)
    except PydanticValidationError:
        return None


__all__ = [
    "STATUS_EVENT_TYPE",
    "IngestionMessage",
    "StatusEvent",
    "status_channel",
    "parse_ingestion_message",
    "parse_status_event",
]
