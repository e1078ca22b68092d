"""Configuration loading.

Settings are read once at startup from the first YAML file found in the
search path, then overridden by ``APP_*`` environment variables. Nested keys
use ``__`` as separator, e.g. ``APP_PROVIDER__TOKEN``.

Example config.yaml:

    zone_id: 023e105f4ecef8ad9ca31a8372d0c353
    traefik_url: http://traefik:8080
    destination: edge.example.com
    update_interval: 1m
    exclude_domains:
      - "*.internal.example.com"
    traefik:
      verify_tls: true
      router_filter: "*@docker"
    provider:
      type: cloudflare
      token: ...
      ttl: 300
      proxied: false
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import yaml

from .errors import ConfigError
from .utils import parse_bool

logger = logging.getLogger(__name__)

ENV_PREFIX = "APP_"
ENV_SEPARATOR = "__"
CONFIG_PATH_ENV = "TRAEFIK_DNS_CONFIG"
DEFAULT_CONFIG_PATHS = ("config.yaml", "/etc/traefik-dns/config.yaml")

SYNC_MODES = ("watch", "once")

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]+)")
_DURATION_UNITS = {
    "ms": 0.001,
    "msec": 0.001,
    "s": 1.0,
    "sec": 1.0,
    "secs": 1.0,
    "second": 1.0,
    "seconds": 1.0,
    "m": 60.0,
    "min": 60.0,
    "mins": 60.0,
    "minute": 60.0,
    "minutes": 60.0,
    "h": 3600.0,
    "hr": 3600.0,
    "hrs": 3600.0,
    "hour": 3600.0,
    "hours": 3600.0,
    "d": 86400.0,
    "day": 86400.0,
    "days": 86400.0,
}


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration like ``30s``, ``5m``, ``1h 30m`` or ``90`` into seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    else:
        text = str(value).strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            matches = list(_DURATION_RE.finditer(text))
            if not matches or _DURATION_RE.sub("", text).strip():
                raise ConfigError(f"invalid duration: '{value}'")
            seconds = 0.0
            for match in matches:
                unit = _DURATION_UNITS.get(match.group(2))
                if unit is None:
                    raise ConfigError(f"invalid duration unit '{match.group(2)}' in '{value}'")
                seconds += float(match.group(1)) * unit

    if seconds <= 0:
        raise ConfigError(f"duration must be positive: '{value}'")
    return seconds


@dataclass(frozen=True)
class CloudflareSettings:
    token: str = ""
    email: str = ""
    api_key: str = ""
    ttl: Optional[int] = None
    proxied: Optional[bool] = None


@dataclass(frozen=True)
class Route53Settings:
    ttl: Optional[int] = None


ProviderSettings = Union[CloudflareSettings, Route53Settings]


@dataclass(frozen=True)
class TraefikSettings:
    verify_tls: bool = True
    username: str = ""
    password: str = ""
    router_filter: str = ""


@dataclass(frozen=True)
class Settings:
    zone_id: str
    traefik_url: str
    destination: str
    update_interval: float
    provider: ProviderSettings
    traefik: TraefikSettings = field(default_factory=TraefikSettings)
    sync_mode: str = "watch"
    exclude_domains: List[str] = field(default_factory=list)


def find_config_file(paths: Sequence[str]) -> Optional[Path]:
    """Return the first existing config file in ``paths``."""
    for candidate in paths:
        path = Path(candidate)
        if path.is_file():
            return path
    return None


def read_config_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to load config from {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Nested dict built from ``APP_*`` variables (keys lower-cased)."""
    overrides: Dict[str, Any] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        keys = [k.lower() for k in name[len(ENV_PREFIX) :].split(ENV_SEPARATOR) if k]
        if not keys:
            continue
        target = overrides
        for key in keys[:-1]:
            nested = target.get(key)
            if not isinstance(nested, dict):
                nested = target[key] = {}
            target = nested
        target[keys[-1]] = value
    return overrides


def merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def _optional_int(value: Any, key: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be an integer, got '{value}'")


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ConfigError(f"expected a list or comma-separated string, got '{value}'")


def _provider_settings(raw: Any) -> ProviderSettings:
    if not isinstance(raw, Mapping):
        raise ConfigError("'provider' must be a mapping with a 'type' key")

    provider_type = str(raw.get("type") or "").lower().strip()
    if provider_type == "cloudflare":
        token = str(raw.get("token") or "").strip()
        email = str(raw.get("email") or "").strip()
        api_key = str(raw.get("api_key") or "").strip()
        if not token and not (email and api_key):
            raise ConfigError("missing Cloudflare credentials: set 'token' or 'email' + 'api_key'")
        proxied = raw.get("proxied")
        return CloudflareSettings(
            token=token,
            email=email,
            api_key=api_key,
            ttl=_optional_int(raw.get("ttl"), "provider.ttl"),
            proxied=None if proxied is None else parse_bool(proxied, default=False),
        )
    if provider_type == "route53":
        return Route53Settings(ttl=_optional_int(raw.get("ttl"), "provider.ttl"))

    raise ConfigError(
        f"Unsupported DNS provider: '{provider_type}'. Supported providers: cloudflare, route53"
    )


def parse_settings(data: Mapping[str, Any]) -> Settings:
    missing = [
        key
        for key in ("zone_id", "traefik_url", "destination", "update_interval", "provider")
        if not data.get(key)
    ]
    if missing:
        raise ConfigError(f"missing required setting(s): {', '.join(missing)}")

    sync_mode = str(data.get("sync_mode") or "watch").lower().strip()
    if sync_mode not in SYNC_MODES:
        raise ConfigError(f"Invalid sync_mode: '{sync_mode}'. Use 'once' or 'watch'")

    traefik = data.get("traefik") or {}
    if not isinstance(traefik, Mapping):
        raise ConfigError("'traefik' must be a mapping")

    return Settings(
        zone_id=str(data["zone_id"]).strip(),
        traefik_url=str(data["traefik_url"]).strip(),
        destination=str(data["destination"]).strip(),
        update_interval=parse_duration(data["update_interval"]),
        provider=_provider_settings(data["provider"]),
        traefik=TraefikSettings(
            verify_tls=parse_bool(traefik.get("verify_tls"), default=True),
            username=str(traefik.get("username") or "").strip(),
            password=str(traefik.get("password") or "").strip(),
            router_filter=str(traefik.get("router_filter") or "").strip(),
        ),
        sync_mode=sync_mode,
        exclude_domains=_string_list(data.get("exclude_domains")),
    )


def load_settings(
    paths: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build Settings from the first config file found plus APP_* overrides."""
    environ = os.environ if environ is None else environ
    if paths is None:
        explicit = environ.get(CONFIG_PATH_ENV, "").strip()
        if explicit and not Path(explicit).is_file():
            raise ConfigError(f"{CONFIG_PATH_ENV} points at a missing file: {explicit}")
        paths = (explicit,) if explicit else DEFAULT_CONFIG_PATHS

    data: Dict[str, Any] = {}
    config_file = find_config_file(paths)
    if config_file is not None:
        logger.info(f"Loading config from {config_file}")
        data = read_config_file(config_file)
    else:
        logger.debug(f"No config file found in {', '.join(paths)}")

    return parse_settings(merge(data, env_overrides(environ)))
