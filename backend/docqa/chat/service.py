"""Grounded question answering over a user's documents."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from docqa.chat.llm import ChatModel
from docqa.chat.prompt import build_rag_prompt
from docqa.chat.sources import SourcePolicy, map_chunks_to_sources
from docqa.core.config import Settings
from docqa.core.errors import ValidationError
from docqa.core.logging import get_logger, log_context
from docqa.core.metrics import ANSWER_LATENCY, QUESTIONS
from docqa.models.dto import ChatSource
from docqa.retrieval.retriever import Retriever

logger = get_logger(__name__)

NO_ANSWER_RESPONSE = "I couldn't find this information in your documents."

NO_KNOWLEDGE_PHRASES = (
    "don't know",
    "do not know",
    "cannot find",
    "can't find",
    "couldn't find",
    "could not find",
    "no information",
    "not found",
    "unable to find",
    "no answer",
    "cannot answer",
    "can't answer",
)


def is_no_knowledge_response(answer: str) -> bool:
    lowered = answer.lower()
    return any(phrase in lowered for phrase in NO_KNOWLEDGE_PHRASES)


@dataclass(slots=True)
class ChatAnswer:
    answer: str
    sources: list[ChatSource] = field(default_factory=list)


class AnswerSynthesizer:
    """Retrieve, prompt, complete, then cite only when the answer is grounded."""

    def __init__(self, retriever: Retriever, chat_model: ChatModel, settings: Settings) -> None:
        self.retriever = retriever
        self.chat_model = chat_model
        self.settings = settings

    def answer(self, question: str, user_id: str) -> ChatAnswer:
        self._validate(question)
        context = log_context(user_id=user_id)

        chunks = self.retriever.retrieve(question, user_id, self.settings.retrieval_limit)
        if not chunks:
            logger.info("No chunks for user, returning canned answer", extra=context)
            QUESTIONS.labels(outcome="no_context").inc()
            return ChatAnswer(answer=NO_ANSWER_RESPONSE)

        messages = build_rag_prompt(chunks, question)
        start_time = time.perf_counter()
        text = self.chat_model.complete(messages)
        ANSWER_LATENCY.labels(stage="complete").observe(time.perf_counter() - start_time)

        if is_no_knowledge_response(text):
            QUESTIONS.labels(outcome="not_grounded").inc()
            logger.info("Answer not grounded, dropping sources", extra={**context, "ctx_chunks": len(chunks)})
            return ChatAnswer(answer=text)

        sources = map_chunks_to_sources(
            chunks,
            policy=SourcePolicy(self.settings.source_policy),
            max_sources=self.settings.max_sources,
        )
        QUESTIONS.labels(outcome="grounded").inc()
        logger.info("Answered question", extra={**context, "ctx_chunks": len(chunks), "ctx_sources": len(sources)})
        return ChatAnswer(answer=text, sources=sources)

    def _validate(self, question: str) -> None:
        if not question or not question.strip():
            QUESTIONS.labels(outcome="rejected").inc()
            raise ValidationError("Question cannot be empty")
        if len(question) > self.settings.max_question_length:
            QUESTIONS.labels(outcome="rejected").inc()
            raise ValidationError(f"Question too long (max {self.settings.max_question_length} chars)")


__all__ = [
    "NO_ANSWER_RESPONSE",
    "NO_KNOWLEDGE_PHRASES",
    "ChatAnswer",
    "AnswerSynthesizer",
    "is_no_knowledge_response",
]
