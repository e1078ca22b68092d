"""Keep DNS CNAME records in sync with Traefik's routed hostnames."""

from .dns import CloudflareProvider, DNSProvider, Route53Provider
from .errors import ConfigError, ProviderError, RecordNotFoundError, RouterError
from .rate_limit import RateLimit
from .router import Route, Router, TraefikRouter
from .updater import UpdateResult, Updater

__version__ = "1.0.0"

__all__ = [
    "CloudflareProvider",
    "ConfigError",
    "DNSProvider",
    "ProviderError",
    "RateLimit",
    "RecordNotFoundError",
    "Route",
    "Route53Provider",
    "Router",
    "RouterError",
    "TraefikRouter",
    "UpdateResult",
    "Updater",
]
