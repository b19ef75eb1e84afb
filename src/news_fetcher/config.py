"""
Configuration management for the news content fetcher.
"""

import json
import os
from pathlib import Path
from typing import Dict, List, Optional

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_USER_AGENT = "NewsContentFetcher/1.0 (+https://github.com/news-content-fetcher)"
RETRYABLE_STATUS_CODES = [408, 429, 500, 502, 503, 504]

logger = structlog.get_logger(__name__)


def _env_flag(name: str, default: bool = True) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() != "false"


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


def parse_skip_domains(value: Optional[str]) -> List[str]:
    """Split a comma separated domain list, lowercasing and dropping blanks."""
    if not value:
        return []
    return [domain.strip().lower() for domain in value.split(",") if domain.strip()]


def parse_custom_headers(value: Optional[str]) -> Dict[str, str]:
    """
    Parse custom headers from a JSON encoded mapping.

    Args:
        value: JSON object string, e.g. '{"X-Trace": "1"}'

    Returns:
        Header mapping, empty when the value is missing or malformed.
    """
    if not value:
        return {}

    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse custom headers", error=str(e))
        return {}

    if not isinstance(parsed, dict):
        logger.warning("Custom headers must be a JSON object", value_type=type(parsed).__name__)
        return {}

    return {str(key): str(header) for key, header in parsed.items()}


class ContentFetcherConfig(BaseModel):
    """Content fetching configuration settings."""
    concurrency_limit: Optional[int] = Field(default_factory=lambda: _env_int("CONTENT_FETCH_CONCURRENCY", None))
    request_delay: float = Field(default_factory=lambda: _env_float("CONTENT_FETCH_DELAY", 1.0))
    user_agent: str = Field(default_factory=lambda: os.getenv("CONTENT_FETCH_USER_AGENT") or DEFAULT_USER_AGENT)
    timeout: float = Field(default_factory=lambda: _env_float("CONTENT_FETCH_TIMEOUT", 10.0))
    robots_timeout: float = 5.0
    max_retries: int = Field(default_factory=lambda: _env_int("CONTENT_FETCH_MAX_RETRIES", 2))
    retry_delay: float = 1.0
    max_requests_per_second: int = Field(default_factory=lambda: _env_int("CONTENT_FETCH_RPS", 1))
    max_requests_per_minute: int = Field(default_factory=lambda: _env_int("CONTENT_FETCH_RPM", 30))
    respect_robots_txt: bool = Field(default_factory=lambda: _env_flag("CONTENT_FETCH_RESPECT_ROBOTS"))
    follow_redirects: bool = Field(default_factory=lambda: _env_flag("CONTENT_FETCH_FOLLOW_REDIRECTS"))
    max_redirects: int = Field(default_factory=lambda: _env_int("CONTENT_FETCH_MAX_REDIRECTS", 5))
    skip_domains: List[str] = Field(default_factory=lambda: parse_skip_domains(os.getenv("CONTENT_FETCH_SKIP_DOMAINS")))
    custom_headers: Dict[str, str] = Field(default_factory=lambda: parse_custom_headers(os.getenv("CONTENT_FETCH_CUSTOM_HEADERS")))
    retryable_status_codes: List[int] = Field(default_factory=lambda: list(RETRYABLE_STATUS_CODES))

    @field_validator("skip_domains", mode="before")
    @classmethod
    def normalize_skip_domains(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return parse_skip_domains(v)
        return [str(domain).strip().lower() for domain in v if str(domain).strip()]

    @field_validator("custom_headers", mode="before")
    @classmethod
    def decode_custom_headers(cls, v):
        if v is None:
            return {}
        if isinstance(v, str):
            return parse_custom_headers(v)
        return v

    @field_validator("max_requests_per_second", "max_requests_per_minute", "max_redirects")
    @classmethod
    def must_be_positive(cls, v, info):
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @field_validator("concurrency_limit")
    @classmethod
    def concurrency_must_be_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError("concurrency_limit must be at least 1")
        return v

    @field_validator("max_retries", "request_delay", "retry_delay", "timeout", "robots_timeout")
    @classmethod
    def must_not_be_negative(cls, v, info):
        if v < 0:
            raise ValueError(f"{info.field_name} must not be negative")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = "json"
    file: Optional[str] = None


class Config(BaseModel):
    """Main configuration class."""
    content_fetcher: ContentFetcherConfig = Field(default_factory=ContentFetcherConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def merge_content_fetcher_config(
    user_config: Optional[ContentFetcherConfig] = None,
    env_config: Optional[ContentFetcherConfig] = None
) -> ContentFetcherConfig:
    """
    Merge user configuration over environment configuration.

    Only fields explicitly set on each layer override the layer below, so a
    user config that sets just ``timeout`` keeps every env-driven value.

    Args:
        user_config: Caller supplied configuration
        env_config: Environment derived configuration. If None, built from the environment.

    Returns:
        Merged ContentFetcherConfig.
    """
    base = env_config if env_config is not None else ContentFetcherConfig()
    if user_config is None:
        return base.model_copy(deep=True)

    overrides = user_config.model_dump(exclude_unset=True)
    merged = base.model_dump()
    merged.update(overrides)
    return ContentFetcherConfig(**merged)


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from a YAML file and environment variables.

    Args:
        config_path: Path to configuration file. If None, only environment
            variables and defaults are used.

    Returns:
        Config object with all settings.
    """
    if config_path is None:
        return Config()

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    return Config(**config_data)


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Config object with all settings.
    """
    global _config
    if _config is None:
        _config = load_config(os.getenv("CONTENT_FETCH_CONFIG"))
    return _config


def reload_config(config_path: Optional[str] = None) -> Config:
    """
    Reload configuration from file.

    Args:
        config_path: Path to configuration file. If None, uses the environment only.

    Returns:
        Updated Config object.
    """
    global _config
    _config = load_config(config_path)
    return _config
