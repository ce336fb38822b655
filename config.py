"""Configuration resolver: explicit args > environment > defaults.

The resolved ServerConfig is built once at startup and passed to every
component that needs it; nothing else reads the process environment.
"""

import logging
import os
from typing import Literal, Mapping, Optional, TypedDict

import httpx
from pydantic import BaseModel, ConfigDict, Field

from errors import ConfigError

DEFAULT_PORT = 3333
DEFAULT_HOST = "127.0.0.1"
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "morph/morph-v2"
DEFAULT_TIMEOUT = 120.0

LogLevel = Literal["debug", "info", "warn", "error"]

LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class ServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    port: int = Field(gt=0)
    api_key: str = Field(min_length=1, repr=False)
    base_url: str = Field(min_length=1)
    model: str = Field(min_length=1)
    host: str = DEFAULT_HOST
    referrer: Optional[str] = None
    title: Optional[str] = None
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    log_level: LogLevel = "info"


class PartialConfig(TypedDict, total=False):
    port: int | str
    host: str
    base_url: str
    model: str
    api_key: str
    timeout: float | str
    log_level: str


def _pick(explicit: object, env_value: Optional[str]) -> object:
    """Return the explicit value when given, else a non-empty env value."""
    if explicit is not None:
        return explicit
    return env_value or None


def resolve_config(
    explicit: Optional[PartialConfig] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ServerConfig:
    """Build the immutable server config. Raises ConfigError on bad input."""
    explicit = explicit or {}
    env = os.environ if env is None else env

    api_key = _pick(explicit.get("api_key"), env.get("MORPH_API_KEY"))
    if not api_key:
        raise ConfigError(
            "Missing Morph API key. Provide MORPH_API_KEY environment variable or --api-key flag."
        )

    port_value = _pick(explicit.get("port"), env.get("PORT"))
    port = _parse_port(DEFAULT_PORT if port_value is None else port_value)

    timeout_value = _pick(explicit.get("timeout"), env.get("MORPH_TIMEOUT"))
    timeout = _parse_timeout(DEFAULT_TIMEOUT if timeout_value is None else timeout_value)

    base_url = sanitize_base_url(
        str(_pick(explicit.get("base_url"), env.get("MORPH_BASE_URL")) or DEFAULT_BASE_URL)
    )
    model = str(_pick(explicit.get("model"), env.get("MORPH_MODEL")) or DEFAULT_MODEL)
    host = str(_pick(explicit.get("host"), env.get("HOST")) or DEFAULT_HOST)

    log_level = str(_pick(explicit.get("log_level"), env.get("LOG_LEVEL")) or "info").lower()
    if log_level not in LOG_LEVELS:
        log_level = "info"

    return ServerConfig(
        port=port,
        api_key=str(api_key),
        base_url=base_url,
        model=model,
        host=host,
        referrer=env.get("OPENROUTER_REFERRER") or None,
        title=env.get("OPENROUTER_TITLE") or None,
        timeout=timeout,
        log_level=log_level,
    )


def _parse_port(value: object) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid port: {value}")
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port: {value}") from None
    if isinstance(value, float) and value != port:
        raise ConfigError(f"Invalid port: {value}")
    if port <= 0:
        raise ConfigError(f"Invalid port: {value}")
    return port


def _parse_timeout(value: object) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid timeout: {value}") from None
    if timeout <= 0:
        raise ConfigError(f"Invalid timeout: {value}")
    return timeout


def sanitize_base_url(raw_url: str) -> str:
    """Re-serialize the parsed URL and strip exactly one trailing slash."""
    if not raw_url:
        return DEFAULT_BASE_URL

    try:
        url = httpx.URL(raw_url)
    except httpx.InvalidURL:
        raise ConfigError(f"Invalid MORPH_BASE_URL: {raw_url}") from None
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigError(f"Invalid MORPH_BASE_URL: {raw_url}")

    serialized = str(url)
    return serialized[:-1] if serialized.endswith("/") else serialized


def configure_logging(level: str) -> None:
    """Apply the resolved log threshold once, at startup."""
    logging.basicConfig(
        level=LOG_LEVELS.get(level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )
