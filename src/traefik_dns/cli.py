#!/usr/bin/env python3
"""traefik-dns - Traefik to DNS CNAME synchronization

Watches the HTTP routers of a Traefik instance and keeps one CNAME per routed
hostname in a DNS zone, all pointing at a single destination. Records for
hosts that are no longer routed are deleted.

Supported DNS Providers:
    - cloudflare: Cloudflare DNS (API token or email + global API key)
    - route53: AWS Route 53 (credentials from the standard AWS chain)

Configuration is read from the first of ./config.yaml and
/etc/traefik-dns/config.yaml (or the file named by TRAEFIK_DNS_CONFIG), then
overridden by APP_* environment variables, see traefik_dns.settings.

Environment variables:

    LOG_LEVEL                  DEBUG, INFO, WARNING, ERROR (default: INFO)
    TRAEFIK_DNS_CONFIG         Explicit config file path
    APP_ZONE_ID                DNS zone / hosted zone id
    APP_TRAEFIK_URL            Traefik API base URL
    APP_DESTINATION            CNAME target for every record
    APP_UPDATE_INTERVAL        Poll interval, e.g. "30s", "5m"
    APP_SYNC_MODE              "watch" (default) or "once"
    APP_EXCLUDE_DOMAINS        Comma-separated hosts, wildcards or ~regexes to skip
    APP_PROVIDER__TYPE         "cloudflare" or "route53"
    APP_PROVIDER__TOKEN        Cloudflare API token
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import boto3
from botocore.exceptions import BotoCoreError

from .dns import CloudflareProvider, DNSProvider, Route53Provider
from .errors import ConfigError, TraefikDNSError
from .router import Router, TraefikRouter
from .settings import CloudflareSettings, Route53Settings, Settings, load_settings
from .updater import Updater
from .utils import compile_exclude_patterns

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # boto3 logs every credential lookup at INFO.
    logging.getLogger("botocore").setLevel(logging.WARNING)


def create_router(settings: Settings) -> Router:
    """Factory function to create the Traefik router client."""
    return TraefikRouter(
        settings.traefik_url,
        verify_tls=settings.traefik.verify_tls,
        username=settings.traefik.username,
        password=settings.traefik.password,
        router_filter=settings.traefik.router_filter,
    )


def create_dns_provider(settings: Settings) -> DNSProvider:
    """Factory function to create the configured DNS provider."""
    provider = settings.provider
    if isinstance(provider, CloudflareSettings):
        kwargs = {}
        if provider.ttl is not None:
            kwargs["ttl"] = provider.ttl
        if provider.proxied is not None:
            kwargs["proxied"] = provider.proxied
        return CloudflareProvider(
            settings.zone_id,
            settings.destination,
            token=provider.token,
            email=provider.email,
            api_key=provider.api_key,
            **kwargs,
        )
    if isinstance(provider, Route53Settings):
        kwargs = {}
        if provider.ttl is not None:
            kwargs["ttl"] = provider.ttl
        return Route53Provider(
            boto3.client("route53"), settings.zone_id, settings.destination, **kwargs
        )
    raise ConfigError(f"Unsupported DNS provider settings: {type(provider).__name__}")


def build_updater(settings: Settings) -> Updater:
    router = create_router(settings)
    dns_provider = create_dns_provider(settings)

    exclude_patterns = compile_exclude_patterns(settings.exclude_domains)
    if exclude_patterns:
        logger.info(f"Domain exclusions: {len(exclude_patterns)} pattern(s) configured")

    return Updater(
        dns_provider,
        router,
        settings.update_interval,
        exclude_patterns=exclude_patterns,
    )


def main():
    """Main entry point."""
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        settings = load_settings()
        updater = build_updater(settings)
    except (TraefikDNSError, ValueError, BotoCoreError) as e:
        logger.error(f"Configuration validation failed: {e}")
        sys.exit(1)

    logger.info(f"traefik-dns: {settings.traefik_url} -> {updater.provider.name}")
    logger.info(f"Zone: {settings.zone_id}, destination: {settings.destination}")
    logger.info(f"Sync mode: {settings.sync_mode}")

    if not updater.router.test_connection():
        logger.error(f"Cannot connect to {updater.router.name}. Exiting.")
        sys.exit(1)
    if not updater.provider.test_connection():
        logger.error(f"Cannot connect to {updater.provider.name}. Exiting.")
        sys.exit(1)

    try:
        if settings.sync_mode == "once":
            result = asyncio.run(updater.run_once())
            logger.info(f"Sync complete: {len(result.created)} added, {len(result.deleted)} removed")
            return

        asyncio.run(updater.run())
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    except asyncio.TimeoutError:
        logger.error(f"Sync timed out after {settings.update_interval}s")
        sys.exit(1)
    except TraefikDNSError as e:
        logger.error(f"Sync failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
