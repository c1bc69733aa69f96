"""config/settings.py

Startup configuration for the proxy: listening address, retry/timing knobs
and the provider pool. Read once at construction; nothing here is reloaded
at runtime.

YAML layout:

    server:
      host: 0.0.0.0
      port: 3001
      log_level: INFO
    proxy:
      max_retries: 3
      request_timeout: 30
      ...
    providers:
      - name: QuickNode
        url_env: QUICKNODE_RPC_URL   # or url: https://...
        rate_limit: 15
        max_errors: 5
        priority: 1
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).with_name("providers.yaml")
CONFIG_PATH_ENV = "RPC_PROXY_CONFIG"
PORT_ENV = "PORT"


class ConfigError(RuntimeError):
    pass


def _validate_range(name: str, value: Any, min_val: float, max_val: Optional[float] = None) -> None:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be numeric, got {value!r}")
    try:
        val = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be numeric, got {value!r}")

    if val < min_val:
        raise ConfigError(f"{name} {val} is below minimum {min_val}")
    if max_val is not None and val > max_val:
        raise ConfigError(f"{name} {val} is above maximum {max_val}")


@dataclass(frozen=True)
class ProviderSettings:
    """One upstream endpoint."""
    name: str
    url: str
    rate_limit: float  # req/sec
    max_errors: int
    priority: int = 0  # Lower = preferred

    def __post_init__(self):
        if not self.name:
            raise ConfigError("provider name must not be empty")
        if not self.url:
            raise ConfigError(f"provider {self.name}: url must not be empty")
        _validate_range(f"{self.name}.rate_limit", self.rate_limit, 0.0)
        if float(self.rate_limit) == 0:
            raise ConfigError(f"provider {self.name}: rate_limit must be positive")
        _validate_range(f"{self.name}.max_errors", self.max_errors, 1)
        _validate_range(f"{self.name}.priority", self.priority, 0)


@dataclass(frozen=True)
class ProxySettings:
    """Everything the proxy reads at startup."""
    providers: Tuple[ProviderSettings, ...]
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    max_retries: int = 3
    request_timeout: float = 30.0
    health_check_interval: float = 30.0
    health_check_timeout: float = 5.0
    cache_ttl: float = 10.0
    session_timeout: float = 300.0
    sweep_interval: float = 60.0
    source: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.providers:
            raise ConfigError("at least one provider must be configured")
        names = [p.name for p in self.providers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigError(f"duplicate provider names: {', '.join(duplicates)}")

        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise ConfigError(f"max_retries must be an integer, got {self.max_retries!r}")
        _validate_range("port", self.port, 1, 65535)
        _validate_range("max_retries", self.max_retries, 1, 20)
        _validate_range("request_timeout", self.request_timeout, 0.1)
        _validate_range("health_check_interval", self.health_check_interval, 1)
        _validate_range("health_check_timeout", self.health_check_timeout, 0.1)
        _validate_range("cache_ttl", self.cache_ttl, 0)
        _validate_range("session_timeout", self.session_timeout, 0)
        _validate_range("sweep_interval", self.sweep_interval, 1)


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def _provider_from_dict(raw: Mapping[str, Any], env: Mapping[str, str]) -> ProviderSettings:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"provider entry must be a mapping, got {raw!r}")
    for key in ("name", "rate_limit", "max_errors"):
        if key not in raw:
            raise ConfigError(f"provider entry missing required key: {key}")

    name = str(raw["name"])
    url = raw.get("url")
    url_env = raw.get("url_env")
    if not url and url_env:
        url = env.get(url_env)
        if not url:
            raise ConfigError(f"Missing env var for RPC provider {name}: {url_env}")
    if not url:
        raise ConfigError(f"provider {name}: one of url / url_env is required")

    return ProviderSettings(
        name=name,
        url=str(url),
        rate_limit=raw["rate_limit"],
        max_errors=_as_int(f"{name}.max_errors", raw["max_errors"]),
        priority=_as_int(f"{name}.priority", raw.get("priority", 0)),
    )


def settings_from_dict(raw: Dict[str, Any], env: Optional[Mapping[str, str]] = None, source: Optional[str] = None) -> ProxySettings:
    """Build ProxySettings from an already-parsed YAML mapping."""
    if env is None:
        env = os.environ
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a YAML mapping")

    server = raw.get("server") or {}
    proxy = raw.get("proxy") or {}
    providers_raw = raw.get("providers") or []
    if not isinstance(providers_raw, list):
        raise ConfigError("providers must be a list")

    kwargs: Dict[str, Any] = {}
    for key in ("host", "port", "log_level"):
        if key in server:
            kwargs[key] = server[key]
    if "max_retries" in proxy:
        proxy = dict(proxy, max_retries=_as_int("max_retries", proxy["max_retries"]))
    for key in (
        "max_retries",
        "request_timeout",
        "health_check_interval",
        "health_check_timeout",
        "cache_ttl",
        "session_timeout",
        "sweep_interval",
    ):
        if key in proxy:
            kwargs[key] = proxy[key]

    port_override = env.get(PORT_ENV)
    if port_override:
        try:
            kwargs["port"] = int(port_override)
        except ValueError:
            raise ConfigError(f"{PORT_ENV} must be an integer, got {port_override!r}")

    providers = tuple(_provider_from_dict(p, env) for p in providers_raw)
    return ProxySettings(providers=providers, source=source, **kwargs)


def load_settings(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> ProxySettings:
    """
    Load and validate proxy settings.

    Args:
        path: YAML file. Falls back to $RPC_PROXY_CONFIG, then the bundled providers.yaml.
        env: Environment mapping (defaults to os.environ)

    Raises:
        ConfigError: missing file, malformed YAML or invalid values
    """
    if env is None:
        env = os.environ
    p = Path(path or env.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    if not p.exists():
        raise ConfigError(f"Config not found: {p}")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}")

    return settings_from_dict(raw or {}, env=env, source=str(p))
