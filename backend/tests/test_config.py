"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from filerag.core.config import Settings, get_settings


def test_yaml_sections_map_to_fields(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FRAG_WATCH_PATH", raising=False)
    config = tmp_path / "config.yaml"
    config.write_text(
        "\n".join(
            [
                "chunking:",
                "  size: 800",
                "  overlap: 100",
                "watcher:",
                f"  path: {tmp_path / 'watched'}",
                "  debounce_ms: 250",
                "  extensions: [PDF, .Md, txt]",
                "rag:",
                "  top_k: 8",
                "  min_relevance_score: 0.4",
                "llm:",
                "  provider: OpenAI",
                "  model: gpt-4o-mini",
            ]
        ),
        encoding="utf-8",
    )

    settings = Settings.from_yaml(config)
    assert settings.chunk_size == 800
    assert settings.chunk_overlap == 100
    assert settings.watch_path == tmp_path / "watched"
    assert settings.debounce_seconds == 0.25
    assert settings.supported_extensions == [".pdf", ".md", ".txt"]
    assert settings.default_top_k == 8
    assert settings.min_relevance_score == 0.4
    assert settings.llm_provider == "openai"
    assert settings.llm_model == "gpt-4o-mini"


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("chunking:\n  size: 800\n", encoding="utf-8")
    monkeypatch.setenv("FRAG_CHUNK_SIZE", "1200")
    monkeypatch.setenv("FRAG_SUPPORTED_EXTENSIONS", "txt, .LOG")
    monkeypatch.setenv("FRAG_CONFIG", str(config))

    settings = Settings.from_yaml()
    assert settings.chunk_size == 1200
    assert settings.supported_extensions == [".txt", ".log"]
    assert settings.watch_enabled is False


def test_defaults_without_config() -> None:
    settings = get_settings()
    assert settings.chunk_size == 1500
    assert settings.chunk_overlap == 200
    assert settings.default_top_k == 5
    assert settings.min_relevance_score == 0.0
    assert settings.max_query_length == 4000
    assert settings.vector_store == "sqlite"
    assert ".docx" in settings.supported_extensions
    assert {".html", ".htm", ".png", ".webp"} <= set(settings.supported_extensions)
    assert settings.vision_enabled is False
    assert get_settings() is settings


def test_overlap_must_be_smaller_than_size() -> None:
    with pytest.raises(ValueError):
        Settings(chunk_size=100, chunk_overlap=100)


def test_list_settings_split_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FRAG_INJECTION_PHRASES", "forget everything||act as root")
    settings = Settings.from_yaml(Path("/nonexistent/config.yaml"))
    assert settings.injection_phrases == ["forget everything", "act as root"]


def test_azure_and_vision_sections(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "\n".join(
            [
                "azure_openai:",
                "  endpoint: https://res.openai.azure.com",
                "  api_key: secret",
                "  embedding_deployment: embed-prod",
                "  llm_deployment: gpt-4o-prod",
                "vision:",
                "  enabled: true",
                "  base_url: http://vision:11434",
                "  model: llava:13b",
            ]
        ),
        encoding="utf-8",
    )

    settings = Settings.from_yaml(config)
    assert settings.azure_openai_endpoint == "https://res.openai.azure.com"
    assert settings.azure_openai_api_key == "secret"
    assert settings.azure_embedding_deployment == "embed-prod"
    assert settings.azure_llm_deployment == "gpt-4o-prod"
    assert settings.vision_enabled is True
    assert settings.vision_base_url == "http://vision:11434"
    assert settings.vision_model == "llava:13b"
