"""Tests for settings loading."""

from pathlib import Path

import pytest

from docqa.core.config import Settings


def test_yaml_sections_and_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "storage:\n  db_path: ~/docqa-test.db\n"
        "queue:\n  url: http://localhost:4566/000000000000/ingest\n  max_receive_count: 3\n"
        "chat:\n  source_policy: per_document\n  max_sources: 2\n"
        "ingest:\n  target_tokens: 100\n  overlap_tokens: 10\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("DOCQA_CONFIG", str(config))
    monkeypatch.setenv("DOCQA_MAX_SOURCES", "4")
    monkeypatch.delenv("DOCQA_DB_PATH", raising=False)

    settings = Settings.from_yaml()

    assert settings.db_path == Path("~/docqa-test.db").expanduser()
    assert settings.sqs_queue_url.endswith("/ingest")
    assert settings.max_receive_count == 3
    assert settings.source_policy == "per_document"
    assert settings.max_sources == 4
    assert (settings.chunk_target_tokens, settings.chunk_overlap_tokens) == (100, 10)


def test_defaults_match_documented_values() -> None:
    settings = Settings()
    assert (settings.chunk_target_tokens, settings.chunk_overlap_tokens, settings.chars_per_token) == (800, 120, 4)
    assert settings.retrieval_limit == 5
    assert settings.max_question_length == 2000
    assert settings.source_policy == "single"


def test_overlap_must_be_smaller_than_target() -> None:
    with pytest.raises(ValueError):
        Settings(chunk_target_tokens=100, chunk_overlap_tokens=100)
