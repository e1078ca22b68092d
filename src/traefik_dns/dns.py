"""DNS providers: CNAME record management against a remote DNS API.

Each provider owns its own RateLimit sized to the vendor's documented quota
and waits on it before every remote call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ProviderError, RecordNotFoundError
from .rate_limit import RateLimit
from .utils import run_blocking

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300


class DNSProvider(ABC):
    """Abstract base class for DNS providers.

    Every record managed by a provider is a CNAME pointing at ``destination``.
    """

    def __init__(self, destination: str, rate_limit: RateLimit):
        self._destination = destination
        self._rate_limit = rate_limit

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @property
    def destination(self) -> str:
        return self._destination

    @property
    def rate_limit(self) -> RateLimit:
        return self._rate_limit

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the DNS provider."""
        pass

    @abstractmethod
    async def list_records(self) -> List[str]:
        """Hostnames that currently have a CNAME to the destination."""
        pass

    @abstractmethod
    async def create_record(self, host: str) -> None:
        """Create or update the CNAME ``host -> destination``."""
        pass

    @abstractmethod
    async def delete_record(self, host: str) -> None:
        """Remove the CNAME for ``host``.

        Raises:
            RecordNotFoundError: no matching record exists.
        """
        pass


# =============================================================================
# Cloudflare
# =============================================================================

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"
# https://developers.cloudflare.com/fundamentals/api/reference/limits/
CLOUDFLARE_RATE_LIMIT = (1200, 300.0)
CLOUDFLARE_PAGE_SIZE = 5000
# "record already exists" / "record with that host already exists"
CLOUDFLARE_RECORD_EXISTS_CODES = {81053, 81057}


class CloudflareError(ProviderError):
    """Cloudflare API call failed."""

    def __init__(self, message: str, codes: Optional[List[int]] = None):
        super().__init__(message)
        self.codes = codes or []


class CloudflareProvider(DNSProvider):
    """Cloudflare DNS provider using the v4 REST API."""

    def __init__(
        self,
        zone_id: str,
        destination: str,
        *,
        token: str = "",
        email: str = "",
        api_key: str = "",
        ttl: int = DEFAULT_TTL,
        proxied: bool = False,
        api_url: str = CLOUDFLARE_API_URL,
        timeout_seconds: float = 10.0,
        rate_limit: Optional[RateLimit] = None,
    ):
        super().__init__(destination, rate_limit or RateLimit(*CLOUDFLARE_RATE_LIMIT))
        self._zone_id = zone_id
        self._ttl = ttl
        self._proxied = proxied
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout_seconds

        self._session = requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        elif email and api_key:
            self._session.headers["X-Auth-Email"] = email
            self._session.headers["X-Auth-Key"] = api_key
        else:
            raise ValueError("Cloudflare requires an API token or an email and API key")

    @property
    def name(self) -> str:
        return "Cloudflare"

    @property
    def ttl(self) -> int:
        return self._ttl

    @property
    def proxied(self) -> bool:
        return self._proxied

    @property
    def _records_url(self) -> str:
        return f"{self._api_url}/zones/{self._zone_id}/dns_records"

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        """Issue one API call and unwrap the Cloudflare response envelope."""
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
            body = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise CloudflareError(f"{method} {url} failed: {e}") from e

        if not isinstance(body, dict):
            raise CloudflareError(f"{method} {url}: unexpected response {body!r}")

        if not body.get("success", False):
            errors = body.get("errors") or []
            codes = [e.get("code") for e in errors if isinstance(e, dict)]
            messages = "; ".join(
                f"{e.get('code')}: {e.get('message')}" for e in errors if isinstance(e, dict)
            )
            raise CloudflareError(
                f"{method} {url} returned HTTP {response.status_code}: {messages or 'unknown error'}",
                codes,
            )
        return body

    async def _call(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        await self._rate_limit.acquire()
        return await run_blocking(self._request, method, url, **kwargs)

    def test_connection(self) -> bool:
        try:
            self._request("GET", f"{self._api_url}/zones/{self._zone_id}")
            logger.info(f"{self.name} connection successful")
            return True
        except CloudflareError as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    async def _find_records(self, **params: Any) -> List[Dict[str, Any]]:
        """All CNAME records matching ``params``, following pagination."""
        records: List[Dict[str, Any]] = []
        page = 1
        while True:
            body = await self._call(
                "GET",
                self._records_url,
                params={"type": "CNAME", "per_page": CLOUDFLARE_PAGE_SIZE, "page": page, **params},
            )
            records.extend(r for r in body.get("result") or [] if isinstance(r, dict))

            total_pages = (body.get("result_info") or {}).get("total_pages") or 1
            if page >= total_pages:
                return records
            page += 1

    def _points_at_destination(self, record: Dict[str, Any]) -> bool:
        return (
            record.get("type") == "CNAME"
            and str(record.get("content", "")).lower() == self._destination.lower()
        )

    async def list_records(self) -> List[str]:
        records = await self._find_records(content=self._destination)
        return [r["name"] for r in records if self._points_at_destination(r)]

    def _record_body(self, host: str) -> Dict[str, Any]:
        return {
            "type": "CNAME",
            "name": host,
            "content": self._destination,
            "ttl": self._ttl,
            "proxied": self._proxied,
        }

    async def create_record(self, host: str) -> None:
        try:
            await self._call("POST", self._records_url, json=self._record_body(host))
            logger.info(f"Created CNAME {host} -> {self._destination}")
            return
        except CloudflareError as e:
            if not CLOUDFLARE_RECORD_EXISTS_CODES.intersection(e.codes):
                raise

        existing = [r for r in await self._find_records(name=host) if r.get("name") == host]
        if not existing:
            raise CloudflareError(f"a non-CNAME record already exists for {host}")

        record = existing[0]
        if self._points_at_destination(record):
            logger.debug(f"CNAME {host} -> {self._destination} already exists")
            return

        await self._call(
            "PATCH", f"{self._records_url}/{record['id']}", json=self._record_body(host)
        )
        logger.info(f"Updated CNAME {host}: {record.get('content')} -> {self._destination}")

    async def delete_record(self, host: str) -> None:
        records = await self._find_records(name=host, content=self._destination)
        record = next(
            (r for r in records if r.get("name") == host and self._points_at_destination(r)),
            None,
        )
        if record is None:
            raise RecordNotFoundError(host)

        await self._call("DELETE", f"{self._records_url}/{record['id']}")
        logger.info(f"Deleted CNAME {host} -> {self._destination}")


# =============================================================================
# AWS Route 53
# =============================================================================

# https://docs.aws.amazon.com/Route53/latest/DeveloperGuide/DNSLimitations.html
ROUTE53_RATE_LIMIT = (5, 1.0)


def _route53_name(name: str) -> str:
    """Route 53 returns absolute names with octal-escaped wildcards."""
    return name.rstrip(".").replace("\\052", "*")


class Route53Provider(DNSProvider):
    """AWS Route 53 DNS provider using a boto3 client."""

    def __init__(
        self,
        client: Any,
        hosted_zone_id: str,
        destination: str,
        *,
        ttl: int = DEFAULT_TTL,
        rate_limit: Optional[RateLimit] = None,
    ):
        super().__init__(destination, rate_limit or RateLimit(*ROUTE53_RATE_LIMIT))
        self._client = client
        self._zone_id = hosted_zone_id
        self._ttl = ttl
        self._listed: Dict[str, Dict[str, Any]] = {}

    @property
    def name(self) -> str:
        return "Route 53"

    @property
    def ttl(self) -> int:
        return self._ttl

    def test_connection(self) -> bool:
        try:
            self._client.get_hosted_zone(Id=self._zone_id)
            logger.info(f"{self.name} connection successful")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    def _list_page(self, start: Dict[str, str]) -> Dict[str, Any]:
        try:
            return self._client.list_resource_record_sets(HostedZoneId=self._zone_id, **start)
        except (BotoCoreError, ClientError) as e:
            raise ProviderError(f"failed to list record sets in {self._zone_id}: {e}") from e

    async def _record_sets(self) -> List[Dict[str, Any]]:
        """Every record set in the zone, one permit per ListResourceRecordSets page."""
        record_sets: List[Dict[str, Any]] = []
        start: Dict[str, str] = {}
        while True:
            await self._rate_limit.acquire()
            page = await run_blocking(self._list_page, start)
            record_sets.extend(page.get("ResourceRecordSets", []))
            if not page.get("IsTruncated"):
                return record_sets
            start = {
                "StartRecordName": page["NextRecordName"],
                "StartRecordType": page["NextRecordType"],
            }
            if "NextRecordIdentifier" in page:
                start["StartRecordIdentifier"] = page["NextRecordIdentifier"]

    def _change(self, action: str, record_set: Dict[str, Any]) -> None:
        try:
            self._client.change_resource_record_sets(
                HostedZoneId=self._zone_id,
                ChangeBatch={"Changes": [{"Action": action, "ResourceRecordSet": record_set}]},
            )
        except (BotoCoreError, ClientError) as e:
            raise ProviderError(f"{action} {record_set.get('Name')} failed: {e}") from e

    def _points_at_destination(self, record_set: Dict[str, Any]) -> bool:
        values = {
            str(r.get("Value", "")).rstrip(".").lower()
            for r in record_set.get("ResourceRecords", [])
        }
        return record_set.get("Type") == "CNAME" and self._destination.rstrip(".").lower() in values

    async def list_records(self) -> List[str]:
        record_sets = [r for r in await self._record_sets() if self._points_at_destination(r)]
        # Kept so that deleting a stale host right after a listing needs no re-list.
        self._listed = {_route53_name(r["Name"]): r for r in record_sets}
        return list(self._listed)

    async def create_record(self, host: str) -> None:
        record_set = {
            "Name": host,
            "Type": "CNAME",
            "TTL": self._ttl,
            "ResourceRecords": [{"Value": self._destination}],
        }
        await self._rate_limit.acquire()
        await run_blocking(self._change, "UPSERT", record_set)
        logger.info(f"Upserted CNAME {host} -> {self._destination}")

    async def delete_record(self, host: str) -> None:
        """DELETE the CNAME set for ``host``.

        Uses the set seen by the last ``list_records`` when there is one and
        falls back to listing the zone. A cached set that has since changed
        makes Route 53 reject the DELETE, which fails the pass; the next
        pass lists again.
        """
        record_set = self._listed.pop(host, None)
        if record_set is None:
            record_set = next(
                (
                    r
                    for r in await self._record_sets()
                    if _route53_name(r.get("Name", "")) == host and r.get("Type") == "CNAME"
                ),
                None,
            )
        if record_set is None:
            raise RecordNotFoundError(host)

        # DELETE must match the existing set exactly, TTL included.
        await self._rate_limit.acquire()
        await run_blocking(self._change, "DELETE", record_set)
        logger.info(f"Deleted CNAME {host} -> {self._destination}")
