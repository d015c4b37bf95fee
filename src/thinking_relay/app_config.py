from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from thinking_relay.usage import PriceTable

_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


@dataclass(frozen=True)
class BackendSettings:
    provider: str
    model: str
    base_url: str | None = _OPENROUTER_BASE_URL
    max_tokens: int = 8192
    timeout_seconds: float = 300.0


@dataclass(frozen=True)
class RuntimeEnv:
    host: str | None
    port: str | None
    log_level: str | None


@dataclass
class AppConfig:
    host: str = "0.0.0.0"
    port: int = 1337
    log_level: str = "INFO"
    log_consumers: list | None = None
    credential_header: str = "X-OpenRouter-API-Token"
    channel_capacity: int = 100
    reasoner: BackendSettings = field(
        default_factory=lambda: BackendSettings(provider="openai", model="deepseek/deepseek-r1")
    )
    answerer: BackendSettings = field(
        default_factory=lambda: BackendSettings(provider="openai", model="anthropic/claude-3.5-sonnet")
    )
    pricing: PriceTable = field(default_factory=PriceTable)


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _parse_backend(config: dict | None, default: BackendSettings) -> BackendSettings:
    config = config or {}
    # An empty BaseUrl selects the provider SDK's own default endpoint.
    base_url = str(config.get("BaseUrl", default.base_url) or "").strip() or None
    return BackendSettings(
        provider=str(config.get("Provider", default.provider)).strip().lower(),
        model=str(config.get("Model", default.model)),
        base_url=base_url,
        max_tokens=int(config.get("MaxTokens", default.max_tokens)),
        timeout_seconds=float(config.get("TimeoutSeconds", default.timeout_seconds)),
    )


def parse_app_config(config: dict) -> AppConfig:
    defaults = AppConfig()
    return AppConfig(
        host=str(config.get("Host", defaults.host)),
        port=int(config.get("Port", defaults.port)),
        log_level=str(config.get("LogLevel", defaults.log_level)).upper(),
        log_consumers=config.get("LogConsumers"),
        credential_header=str(config.get("CredentialHeader", defaults.credential_header)),
        channel_capacity=max(1, int(config.get("ChannelCapacity", defaults.channel_capacity))),
        reasoner=_parse_backend(config.get("Reasoner"), defaults.reasoner),
        answerer=_parse_backend(config.get("Answerer"), defaults.answerer),
        pricing=PriceTable.from_dict(config.get("Pricing")),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        host=os.environ.get("RELAY_HOST"),
        port=os.environ.get("RELAY_PORT"),
        log_level=os.environ.get("RELAY_LOG_LEVEL"),
    )


def apply_runtime_env(app: AppConfig, env: RuntimeEnv) -> AppConfig:
    """Environment variables win over config.json."""
    overrides: dict = {}
    if env.host:
        overrides["host"] = env.host
    if env.port:
        overrides["port"] = int(env.port)
    if env.log_level:
        overrides["log_level"] = env.log_level.upper()
    return replace(app, **overrides) if overrides else app
