from __future__ import annotations

from pathlib import Path

import pytest

from http_analytics.config import load_config


_ENV_VARS = (
    "HTTP_ANALYTICS_CONFIG",
    "HTTP_ANALYTICS_ENV",
    "HTTP_ANALYTICS_PORT",
    "HTTP_ANALYTICS_API_TOKEN",
    "LOG_LEVEL",
    "AI_PROVIDER",
    "AI_MODEL",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "GROQ_API_KEY",
    "GROQ_MODEL",
    "HUGGINGFACE_API_KEY",
    "HUGGINGFACE_MODEL",
    "COHERE_API_KEY",
    "COHERE_MODEL",
    "OLLAMA_MODEL",
    "OPENAI_MODEL",
    "OLLAMA_BASE_URL",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path: Path) -> None:
    cfg = load_config(str(tmp_path / "missing.yaml"))

    assert cfg.port == 5000
    assert cfg.history_capacity == 100
    assert [e.url for e in cfg.endpoints] == [
        "https://httpstat.us/200",
        "https://httpstat.us/500",
        "https://api.github.com",
    ]
    assert cfg.health_rules.sample_size == 10
    assert cfg.health_rules.cooldown_seconds == 300
    assert cfg.anomaly.window_seconds == 60
    assert cfg.anomaly.min_samples == 10
    assert cfg.reports.weekly_cron == "0 9 * * mon"
    assert cfg.ai.provider == "gemini"
    assert cfg.ai.is_enabled() is False
    assert cfg.log_retention_hours == 24
    assert cfg.max_logs == 10_000


def test_yaml_file_is_loaded(tmp_path: Path) -> None:
    path = tmp_path / "agent.yaml"
    path.write_text(
        "port: 8080\n"
        "endpoints:\n"
        "  - url: https://only.test\n"
        "    interval_ms: 5000\n"
        "    expected_status: [200, 204]\n"
        "health_rules:\n"
        "  single_alert_per_cycle: true\n",
        encoding="utf-8",
    )
    cfg = load_config(str(path))

    assert cfg.port == 8080
    assert cfg.health_rules.single_alert_per_cycle is True
    monitor = cfg.endpoints[0].to_monitor_config()
    assert monitor.url == "https://only.test"
    assert monitor.interval_seconds == 5.0
    assert monitor.expected_status == [200, 204]


def test_config_path_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "env.yaml"
    path.write_text("environment: staging\n", encoding="utf-8")
    monkeypatch.setenv("HTTP_ANALYTICS_CONFIG", str(path))

    assert load_config().environment == "staging"


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HTTP_ANALYTICS_PORT", "9000")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("AI_PROVIDER", "Groq")
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "1:t")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "99")

    cfg = load_config(str(tmp_path / "missing.yaml"))

    assert cfg.port == 9000
    assert cfg.log_level == "DEBUG"
    assert cfg.ai.provider == "groq"
    assert cfg.ai.api_key == "gsk-test"
    assert cfg.ai.is_enabled() is True
    assert cfg.ai.resolved_base_url() == "https://api.groq.com/openai/v1"
    assert cfg.telegram.is_configured() is True


def test_ollama_needs_no_key(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AI_PROVIDER", "ollama")
    monkeypatch.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434/")

    cfg = load_config(str(tmp_path / "missing.yaml"))

    assert cfg.ai.is_enabled() is True
    assert cfg.ai.resolved_base_url() == "http://gpu-box:11434/v1"


def test_gemini_is_the_default_provider(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.setenv("GEMINI_MODEL", "gemini-1.5-pro")

    cfg = load_config(str(tmp_path / "missing.yaml"))

    assert cfg.ai.resolved_provider() == "gemini"
    assert cfg.ai.api_key == "g-key"
    assert cfg.ai.resolved_model() == "gemini-1.5-pro"
    assert cfg.ai.is_enabled() is True


@pytest.mark.parametrize(
    ("provider", "key_env", "model_env"),
    [
        ("huggingface", "HUGGINGFACE_API_KEY", "HUGGINGFACE_MODEL"),
        ("cohere", "COHERE_API_KEY", "COHERE_MODEL"),
        ("openai", "OPENAI_API_KEY", "OPENAI_MODEL"),
    ],
)
def test_per_provider_key_and_model(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, provider: str, key_env: str, model_env: str
) -> None:
    monkeypatch.setenv("AI_PROVIDER", provider)
    monkeypatch.setenv(key_env, "secret")
    monkeypatch.setenv(model_env, "custom-model")

    cfg = load_config(str(tmp_path / "missing.yaml"))

    assert cfg.ai.api_key == "secret"
    assert cfg.ai.resolved_model() == "custom-model"
    assert cfg.ai.is_enabled() is True


def test_ai_model_wins_over_provider_model(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AI_PROVIDER", "ollama")
    monkeypatch.setenv("OLLAMA_MODEL", "qwen2.5")
    monkeypatch.setenv("AI_MODEL", "mistral")

    assert load_config(str(tmp_path / "missing.yaml")).ai.resolved_model() == "mistral"


def test_unknown_provider_uses_gemini_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AI_PROVIDER", "mystery")
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")

    cfg = load_config(str(tmp_path / "missing.yaml"))

    assert cfg.ai.provider == "mystery"
    assert cfg.ai.resolved_provider() == "gemini"
    assert cfg.ai.api_key == "g-key"
    assert cfg.ai.resolved_base_url() == "https://generativelanguage.googleapis.com"
