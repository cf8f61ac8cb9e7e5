"""Settings from config.yaml, the environment and .env."""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .explorer import DEFAULT_EXPLORER_URL
from .history import DEFAULT_STRIDE
from .trace_providers import PROVIDER_NAMES

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_RPC_URL = "https://polygon-rpc.com"
POSITIVE_INT_SETTINGS = ("retries_per_endpoint", "rpc_timeout", "request_timeout", "history_stride")


@dataclass
class Settings:
    rpc_urls: list[str] = field(default_factory=lambda: [DEFAULT_RPC_URL])
    explorer_url: str = DEFAULT_EXPLORER_URL
    explorer_api_key: Optional[str] = None
    retries_per_endpoint: int = 3
    rpc_timeout: int = 30
    request_timeout: int = 30
    min_request_delay: float = 0.2
    history_stride: int = DEFAULT_STRIDE
    trace_provider: str = "explorer"
    checkpoint_dir: str = "analysis_data"
    output_dir: str = "."


def load_config(config_path: Optional[str] = None) -> dict:
    """Raw YAML mapping; a missing default config file is not an error"""
    path = config_path or DEFAULT_CONFIG_PATH
    if config_path is None and not os.path.exists(path):
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logging.error(f"Error loading config file: {e}")
        raise ConfigError(f"Cannot load config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _split_urls(value: str) -> list[str]:
    return [url.strip() for url in value.split(",") if url.strip()]


def _positive_int(name: str, value) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a positive integer, got {value!r}") from None
    if number <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")
    return number


def validate_settings(settings: Settings) -> Settings:
    """Coerce numeric settings and reject values the analysis cannot run with"""
    for name in POSITIVE_INT_SETTINGS:
        setattr(settings, name, _positive_int(name, getattr(settings, name)))

    try:
        settings.min_request_delay = float(settings.min_request_delay)
    except (TypeError, ValueError):
        raise ConfigError(f"min_request_delay must be a number, got {settings.min_request_delay!r}") from None
    if settings.min_request_delay < 0:
        raise ConfigError(f"min_request_delay must not be negative, got {settings.min_request_delay}")

    provider = str(settings.trace_provider).lower()
    if provider not in PROVIDER_NAMES:
        raise ConfigError(f"trace_provider must be one of {', '.join(PROVIDER_NAMES)}, got {settings.trace_provider!r}")
    settings.trace_provider = provider

    if not isinstance(settings.rpc_urls, list) or not settings.rpc_urls:
        raise ConfigError("rpc_urls must list at least one endpoint")
    return settings


def load_settings(config_path: Optional[str] = None) -> Settings:
    load_dotenv()
    config = load_config(config_path)
    settings = Settings()

    for name in Settings.__dataclass_fields__:
        if name in config and config[name] is not None:
            setattr(settings, name, config[name])
    if isinstance(settings.rpc_urls, str):
        settings.rpc_urls = _split_urls(settings.rpc_urls)

    # Environment wins over the file
    if os.getenv("RPC_URLS"):
        settings.rpc_urls = _split_urls(os.environ["RPC_URLS"])
    elif os.getenv("POLYGON_RPC"):
        settings.rpc_urls = [os.environ["POLYGON_RPC"]]
    if os.getenv("EXPLORER_URL"):
        settings.explorer_url = os.environ["EXPLORER_URL"]
    api_key = os.getenv("EXPLORER_API_KEY") or os.getenv("POLYGONSCAN_API_KEY")
    if api_key:
        settings.explorer_api_key = api_key

    return validate_settings(settings)
