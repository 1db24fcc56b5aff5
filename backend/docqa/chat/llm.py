"""Language-model adapters used for answer synthesis."""

from __future__ import annotations

from typing import Protocol, Sequence, TypedDict

import openai

from docqa.core.config import Settings
from docqa.core.errors import DependencyError


class ChatMessage(TypedDict):
    role: str
    content: str


class ChatModel(Protocol):
    def complete(self, messages: Sequence[ChatMessage]) -> str: ...


class OpenAIChatModel:
    """Chat completions with temperature 0; the client is created on first use."""

    def __init__(self, api_key: str | None, model_name: str, base_url: str | None = None) -> None:
        self.model_name = model_name
        self._api_key = api_key
        self._base_url = base_url
        self._client: openai.OpenAI | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIChatModel":
        return cls(
            api_key=settings.openai_api_key,
            model_name=settings.chat_model,
            base_url=settings.openai_base_url,
        )

    @property
    def client(self) -> openai.OpenAI:
        if self._client is None:
            if not self._api_key:
                raise DependencyError("OpenAI API key is not configured", provider="openai")
            self._client = openai.OpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    def complete(self, messages: Sequence[ChatMessage]) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=[dict(message) for message in messages],
                temperature=0,
            )
        except openai.OpenAIError as exc:
            raise DependencyError(f"Chat completion failed: {exc}", provider="openai") from exc
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


__all__ = ["ChatMessage", "ChatModel", "OpenAIChatModel"]
