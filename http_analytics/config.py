"""Configuration management for the HTTP analytics service."""

import os
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from .models import EndpointMonitorConfig


DEFAULT_PROVIDER = "gemini"

# Every provider except a local Ollama talks to a hosted API and needs a key.
KEYED_PROVIDERS = {"gemini", "anthropic", "openai", "groq", "huggingface", "cohere"}

_PROVIDER_DEFAULTS: dict[str, dict[str, str]] = {
    "gemini": {"model": "gemini-1.5-flash", "base_url": "https://generativelanguage.googleapis.com"},
    "anthropic": {"model": "claude-sonnet-4-20250514", "base_url": "https://api.anthropic.com"},
    "openai": {"model": "gpt-4o-mini", "base_url": "https://api.openai.com/v1"},
    "groq": {"model": "llama-3.1-8b-instant", "base_url": "https://api.groq.com/openai/v1"},
    "ollama": {"model": "llama3.2", "base_url": "http://localhost:11434/v1"},
    "huggingface": {"model": "meta-llama/Llama-3.2-3B-Instruct", "base_url": "https://router.huggingface.co/v1"},
    "cohere": {"model": "command-r", "base_url": "https://api.cohere.com"},
}

_PROVIDER_KEY_ENV = {
    "gemini": "GEMINI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "huggingface": "HUGGINGFACE_API_KEY",
    "cohere": "COHERE_API_KEY",
}


def resolve_provider(name: Optional[str]) -> str:
    """Normalize a provider name; unknown names fall back to Gemini."""
    provider = (name or "").strip().lower()
    return provider if provider in _PROVIDER_DEFAULTS else DEFAULT_PROVIDER


class EndpointConfig(BaseModel):
    """A URL the agent polls."""
    url: str = Field(..., min_length=1, description="Target URL")
    interval_ms: int = Field(default=60_000, ge=1000, description="Poll interval in milliseconds")
    expected_status: list[int] = Field(default_factory=lambda: [200], description="Expected status codes")

    def to_monitor_config(self) -> EndpointMonitorConfig:
        return EndpointMonitorConfig(
            url=self.url,
            interval_ms=self.interval_ms,
            expected_status=list(self.expected_status),
        )


class AIProviderConfig(BaseModel):
    """Text-generation provider settings."""
    provider: str = Field(
        default=DEFAULT_PROVIDER,
        description="gemini | anthropic | openai | groq | ollama | huggingface | cohere",
    )
    api_key: Optional[str] = Field(default=None, description="API key for hosted providers")
    model: Optional[str] = Field(default=None, description="Model name, provider default when empty")
    base_url: Optional[str] = Field(default=None, description="API base URL, provider default when empty")
    timeout_seconds: float = Field(default=120.0, description="Timeout for a single generation call")
    insight_max_tokens: int = Field(default=1000, description="Token budget for insight replies")
    report_max_tokens: int = Field(default=2000, description="Token budget for reports")

    def resolved_provider(self) -> str:
        return resolve_provider(self.provider)

    def resolved_model(self) -> str:
        return self.model or _PROVIDER_DEFAULTS[self.resolved_provider()]["model"]

    def resolved_base_url(self) -> str:
        return self.base_url or _PROVIDER_DEFAULTS[self.resolved_provider()]["base_url"]

    def is_enabled(self) -> bool:
        if self.resolved_provider() in KEYED_PROVIDERS:
            return bool(self.api_key)
        return True


class HealthRulesConfig(BaseModel):
    """Fixed-threshold rules applied to each target's recent probes."""
    sample_size: int = Field(default=10, ge=1)
    error_rate_threshold: float = Field(default=0.3, description="Failure fraction that must be exceeded")
    slow_response_ms: float = Field(default=5000.0, description="Mean latency that must be exceeded")
    max_distinct_status_codes: int = Field(default=3, description="Distinct status count that must be exceeded")
    cooldown_seconds: float = Field(default=300.0, description="Minimum time between alerts per target")
    single_alert_per_cycle: bool = Field(default=False, description="Stop after the first fired rule")
    down_after_failures: int = Field(default=5, ge=1, description="Consecutive failures reported as endpoint down")


class AnomalyConfig(BaseModel):
    """Sliding-window detector fed by the log store."""
    window_seconds: float = Field(default=60.0)
    min_samples: int = Field(default=10)
    error_rate_threshold: float = Field(default=0.3)
    spike_sigma: float = Field(default=3.0)


class ReportScheduleConfig(BaseModel):
    """Cron expressions (minute hour day month day_of_week)."""
    enabled: bool = Field(default=True)
    daily_cron: str = Field(default="0 9 * * *")
    weekly_cron: str = Field(default="0 9 * * mon")
    monthly_cron: str = Field(default="0 10 1 * *")
    health_check_cron: str = Field(default="0 * * * *")


class TelegramConfig(BaseModel):
    bot_token: Optional[str] = Field(default=None)
    chat_id: Optional[str] = Field(default=None)

    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)


def _default_endpoints() -> list[EndpointConfig]:
    return [
        EndpointConfig(url="https://httpstat.us/200", interval_ms=30_000, expected_status=[200]),
        EndpointConfig(url="https://httpstat.us/500", interval_ms=60_000, expected_status=[500]),
        EndpointConfig(url="https://api.github.com", interval_ms=120_000, expected_status=[200]),
    ]


class AgentConfig(BaseModel):
    """Main configuration for the HTTP analytics service."""

    # Environment settings
    environment: str = Field(default="production", description="Deployment environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server settings
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=5000)
    api_token: Optional[str] = Field(default=None, description="Bearer token required for /api/logs")

    # Probing
    probe_timeout_seconds: float = Field(default=10.0, description="Timeout for a single probe")
    history_capacity: int = Field(default=100, ge=1, description="Probe results kept per target")
    endpoints: list[EndpointConfig] = Field(default_factory=_default_endpoints)

    # Simulated HTTP log feed
    simulate_logs: bool = Field(default=True)
    log_simulation_interval_seconds: float = Field(default=5.0)
    seed_sample_logs: bool = Field(default=True)
    log_retention_hours: float = Field(default=24.0, gt=0, description="Hours to retain HTTP log lines")
    max_logs: int = Field(default=10_000, ge=1, description="Upper bound on stored HTTP log lines")

    ai: AIProviderConfig = Field(default_factory=AIProviderConfig)
    health_rules: HealthRulesConfig = Field(default_factory=HealthRulesConfig)
    anomaly: AnomalyConfig = Field(default_factory=AnomalyConfig)
    reports: ReportScheduleConfig = Field(default_factory=ReportScheduleConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)


def _apply_env_overrides(config_data: dict[str, Any]) -> dict[str, Any]:
    env_overrides = {
        "environment": os.getenv("HTTP_ANALYTICS_ENV"),
        "log_level": os.getenv("LOG_LEVEL"),
        "port": os.getenv("HTTP_ANALYTICS_PORT"),
        "api_token": os.getenv("HTTP_ANALYTICS_API_TOKEN"),
    }
    for key, value in env_overrides.items():
        if value is not None:
            if key == "port":
                value = int(value)
            config_data[key] = value

    ai = dict(config_data.get("ai") or {})
    if os.getenv("AI_PROVIDER"):
        ai["provider"] = os.getenv("AI_PROVIDER").strip().lower()
    provider = resolve_provider(ai.get("provider"))

    key_env = _PROVIDER_KEY_ENV.get(provider)
    if key_env and os.getenv(key_env):
        ai["api_key"] = os.getenv(key_env)
    # AI_MODEL applies to any provider and wins over the per-provider variable.
    model = os.getenv("AI_MODEL") or os.getenv(f"{provider.upper()}_MODEL")
    if model:
        ai["model"] = model
    if provider == "ollama" and os.getenv("OLLAMA_BASE_URL"):
        ai["base_url"] = os.getenv("OLLAMA_BASE_URL").rstrip("/") + "/v1"
    if provider == "openai" and os.getenv("OPENAI_BASE_URL"):
        ai["base_url"] = os.getenv("OPENAI_BASE_URL")
    config_data["ai"] = ai

    telegram = dict(config_data.get("telegram") or {})
    if os.getenv("TELEGRAM_BOT_TOKEN"):
        telegram["bot_token"] = os.getenv("TELEGRAM_BOT_TOKEN")
    if os.getenv("TELEGRAM_CHAT_ID"):
        telegram["chat_id"] = os.getenv("TELEGRAM_CHAT_ID")
    config_data["telegram"] = telegram

    return config_data


def load_config(config_path: Optional[str] = None) -> AgentConfig:
    """Load configuration from file or environment variables."""
    if config_path is None:
        config_path = os.getenv("HTTP_ANALYTICS_CONFIG", "config/http_analytics.yaml")

    config_data: dict[str, Any] = {}

    # Load from file if exists
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}

    return AgentConfig(**_apply_env_overrides(config_data))


def get_config() -> AgentConfig:
    """Get the configuration for the current process."""
    return load_config()
