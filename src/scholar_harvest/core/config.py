"""
Runtime settings.

Every tuned constant of the pipeline lives here so deployments can adjust
them without code changes. Resolution order (later wins):

1. Dataclass defaults
2. YAML file (``config_path`` argument or ``SCHOLAR_HARVEST_CONFIG``)
3. Environment variables ``SCHOLAR_HARVEST_<FIELD>`` plus the conventional
   ``GEMINI_API_KEY`` and ``SEMANTIC_SCHOLAR_API_KEY``

Usage::

    settings = load_settings()
    container.config.from_dict(settings.as_dict())
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "SCHOLAR_HARVEST_"
CONFIG_PATH_ENV = "SCHOLAR_HARVEST_CONFIG"

DEFAULT_DATA_DIR = str(Path.home() / ".scholar-harvest")
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/115.0.0.0 Safari/537.36"
)

# Conventional variable names honoured in addition to the prefixed ones
_ENV_ALIASES = {
    "GEMINI_API_KEY": "gemini_api_key",
    "SEMANTIC_SCHOLAR_API_KEY": "semantic_scholar_api_key",
}

_LLM_PROVIDERS = frozenset({"none", "gemini", "ollama"})
_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class HarvestSettings:
    """Tunable constants for search, enrichment and retrieval."""

    data_dir: str = DEFAULT_DATA_DIR
    log_level: str = "INFO"

    # Network gateway
    user_agent: str = DEFAULT_USER_AGENT
    gateway_timeout: float = 15.0
    max_body_bytes: int = 50 * 1024 * 1024

    # Primary provider (Semantic Scholar)
    semantic_scholar_base_url: str = "https://api.semanticscholar.org/graph/v1"
    semantic_scholar_api_key: str | None = None
    primary_batch_size: int = 40
    primary_timeout: float = 15.0
    primary_transport_retries: int = 2
    primary_transport_retry_delay: float = 1.0
    primary_rate_limit_retries: int = 3
    primary_rate_limit_base_delay: float = 3.0
    primary_breaker_cooldown: float = 15.0
    primary_page_delay: float = 2.0
    require_abstract: bool = True
    min_abstract_length: int = 50

    # Secondary provider (Google Scholar scrape)
    secondary_enabled: bool = True
    scholar_base_url: str = "https://scholar.google.com/scholar"
    secondary_max_pages: int = 1
    secondary_page_delay: float = 2.0

    # Orchestration
    strategy_margin: int = 20
    politeness_delay: float = 5.0
    max_scan_depth: int = 500

    # Abstract enrichment
    enrichment_cooldown: float = 30.0
    enrichment_timeout: float = 15.0
    llm_html_limit: int = 20000
    enrichment_concurrency: int = 3

    # Document resolution
    resolver_max_requests: int = 10
    resolver_max_depth: int = 2
    resolver_timeout: float = 8.0
    min_pdf_bytes: int = 10 * 1024
    pdf_max_pages: int = 20
    html_text_limit: int = 10000
    processing_breaker_threshold: int = 3
    processing_breaker_cooldown: float = 120.0
    pdf_html_allowed_hosts: tuple[str, ...] = ("semanticscholar.org", "arxiv.org")

    # LLM collaborator
    llm_provider: str = "none"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1"
    llm_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.llm_provider not in _LLM_PROVIDERS:
            raise ConfigurationError(
                f"Unknown llm_provider {self.llm_provider!r} "
                f"(expected one of {', '.join(sorted(_LLM_PROVIDERS))})"
            )
        for name in ("primary_batch_size", "resolver_max_requests", "max_scan_depth"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1")

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["pdf_html_allowed_hosts"] = list(self.pdf_html_allowed_hosts)
        return data

    @classmethod
    def from_dict(cls, values: Mapping[str, Any] | None = None) -> HarvestSettings:
        """Build settings from a (possibly partial) mapping, coercing types."""
        return cls(**_coerce_values(values or {}))


def _field_defaults() -> dict[str, Any]:
    return {f.name: f.default for f in fields(HarvestSettings)}


def _coerce(name: str, default: Any, value: Any) -> Any:
    if value is None:
        return None
    try:
        if isinstance(default, bool):
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, tuple):
            if isinstance(value, str):
                return tuple(part.strip() for part in value.split(",") if part.strip())
            return tuple(str(part) for part in value)
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for setting '{name}': {value!r}") from e


def _coerce_values(values: Mapping[str, Any]) -> dict[str, Any]:
    defaults = _field_defaults()
    unknown = sorted(set(values) - set(defaults))
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")
    return {name: _coerce(name, defaults[name], value) for name, value in values.items()}


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _read_env(environ: Mapping[str, str]) -> dict[str, Any]:
    names = set(_field_defaults())
    values: dict[str, Any] = {}
    for env_name, field_name in _ENV_ALIASES.items():
        raw = environ.get(env_name, "").strip()
        if raw:
            values[field_name] = raw
    for key, raw in environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue
        field_name = key[len(ENV_PREFIX):].lower()
        if field_name in names and raw.strip():
            values[field_name] = raw.strip()
    return values


def load_settings(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> HarvestSettings:
    """Load settings from defaults, an optional YAML file and the environment."""
    env = os.environ if environ is None else environ
    merged: dict[str, Any] = {}

    path = config_path or env.get(CONFIG_PATH_ENV, "").strip() or None
    if path:
        merged.update(_read_yaml(Path(path).expanduser()))
        logger.info("Loaded settings from %s", path)

    merged.update(_read_env(env))
    settings = HarvestSettings.from_dict(merged)

    if settings.llm_provider == "gemini" and not settings.gemini_api_key:
        raise ConfigurationError(
            "llm_provider is 'gemini' but no API key is configured "
            "(set GEMINI_API_KEY or SCHOLAR_HARVEST_GEMINI_API_KEY)"
        )
    return settings
