"""Exception types shared by the router, the DNS providers and the updater."""

from __future__ import annotations


class TraefikDNSError(Exception):
    """Base class for all traefik-dns errors."""


class ConfigError(TraefikDNSError):
    """Invalid or incomplete configuration. Fatal at startup."""


class RouterError(TraefikDNSError):
    """The reverse proxy could not be queried for its routes."""


class ProviderError(TraefikDNSError):
    """A DNS provider call (list/create/delete) failed."""


class RecordNotFoundError(ProviderError):
    """delete_record was asked to remove a record that does not exist."""

    def __init__(self, host: str):
        super().__init__(f"record not found: {host}")
        self.host = host
