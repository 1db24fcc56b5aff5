"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

INGEST_MESSAGES = Counter(
    "docqa_ingest_messages_total",
    "Ingestion messages handled",
    labelnames=("outcome",),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "docqa_ingest_duration_seconds",
    "Ingestion pipeline duration",
    labelnames=("status",),
    registry=REGISTRY,
)

CHUNKS_WRITTEN = Counter(
    "docqa_chunks_written_total",
    "Chunks persisted with embeddings",
    registry=REGISTRY,
)

DEAD_LETTERED = Counter(
    "docqa_dead_lettered_total",
    "Messages routed to the dead-letter path",
    labelnames=("reason",),
    registry=REGISTRY,
)

QUESTIONS = Counter(
    "docqa_questions_total",
    "Questions answered",
    labelnames=("outcome",),
    registry=REGISTRY,
)

ANSWER_LATENCY = Histogram(
    "docqa_answer_latency_seconds",
    "Latency of question answering by stage",
    labelnames=("stage",),
    registry=REGISTRY,
)

ACTIVE_ATTEMPTS = Gauge(
    "docqa_active_attempts",
    "Ingestion attempts currently running in this process",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "INGEST_MESSAGES",
    "INGEST_DURATION",
    "CHUNKS_WRITTEN",
    "DEAD_LETTERED",
    "QUESTIONS",
    "ANSWER_LATENCY",
    "ACTIVE_ATTEMPTS",
    "metrics_response",
]
