"""Reverse proxy route discovery."""

from __future__ import annotations

import fnmatch
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List
from urllib.parse import urlsplit

import requests
from requests.auth import HTTPBasicAuth

from .errors import ConfigError, RouterError
from .utils import run_blocking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    """A hostname served by a proxy router."""

    id: str
    host: str


class Router(ABC):
    """Abstract base class for reverse proxy route sources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the router name for logging."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the reverse proxy API."""
        pass

    @abstractmethod
    async def get_routes(self) -> List[Route]:
        """Return a full snapshot of the currently routed hosts.

        Raises:
            RouterError: the routes could not be fetched or parsed.
        """
        pass


# Host(...) matchers, then every quoted argument inside one.
HOST_MATCHER_RE = re.compile(r"\bHost\((.+?)\)")
HOST_ARG_RE = re.compile(r"[`\"]([^`\"]+)[`\"]")


def parse_hosts(rule: str) -> List[str]:
    """Extract hostnames from a Traefik router rule.

    >>> parse_hosts("Host(`a.example.com`, `b.example.com`) && Path(`/api`)")
    ['a.example.com', 'b.example.com']
    """
    hosts: List[str] = []
    for matcher in HOST_MATCHER_RE.finditer(rule or ""):
        hosts.extend(m.group(1) for m in HOST_ARG_RE.finditer(matcher.group(1)))
    return hosts


class TraefikRouter(Router):
    """Traefik HTTP routers, read from the Traefik API."""

    def __init__(
        self,
        url: str,
        *,
        verify_tls: bool = True,
        username: str = "",
        password: str = "",
        router_filter: str = "",
        timeout_seconds: float = 10.0,
    ):
        parts = urlsplit(url or "")
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ConfigError(f"bad Traefik base URL: '{url}'")

        self._url = url.rstrip("/")
        self._verify_tls = verify_tls
        self._router_filter = router_filter
        self._timeout = timeout_seconds
        self._session = requests.Session()
        if username and password:
            self._session.auth = HTTPBasicAuth(username, password)

    @property
    def name(self) -> str:
        return "Traefik"

    @property
    def url(self) -> str:
        return self._url

    def test_connection(self) -> bool:
        try:
            response = self._session.get(
                f"{self._url}/api/version", timeout=self._timeout, verify=self._verify_tls
            )
            response.raise_for_status()
            logger.info(f"{self.name} connection successful")
            return True
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to connect to {self.name} at {self._url}: {e}")
            return False

    def _fetch_routers(self) -> Any:
        try:
            response = self._session.get(
                f"{self._url}/api/http/routers",
                timeout=self._timeout,
                verify=self._verify_tls,
            )
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, json.JSONDecodeError) as e:
            raise RouterError(f"failed to get routes from {self._url}: {e}") from e

    async def get_routes(self) -> List[Route]:
        routers = await run_blocking(self._fetch_routers)

        if not isinstance(routers, list):
            raise RouterError(
                f"unexpected response format from {self._url}: "
                f"expected list, got {type(routers).__name__}"
            )

        routes: List[Route] = []
        for router in routers:
            if not isinstance(router, dict):
                logger.debug(f"Skipping non-dict router entry: {router}")
                continue
            router_name = str(router.get("name") or "")

            if self._router_filter and not fnmatch.fnmatch(router_name, self._router_filter):
                logger.debug(
                    f"Router '{router_name}' filtered out by name pattern '{self._router_filter}'"
                )
                continue

            for host in parse_hosts(str(router.get("rule") or "")):
                routes.append(Route(id=router_name, host=host))

        logger.debug(f"Got {len(routes)} route(s) from {len(routers)} Traefik router(s)")
        return routes
