"""Unit tests for TraefikRouter and Traefik rule parsing."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
import requests

from traefik_dns.errors import ConfigError, RouterError
from traefik_dns.router import Route, TraefikRouter, parse_hosts


def mock_response(payload) -> MagicMock:
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json.return_value = payload
    return response


class TestParseHosts:
    """Tests for hostname extraction from router rules."""

    def test_single_host(self) -> None:
        assert parse_hosts("Host(`example.com`)") == ["example.com"]

    def test_multiple_arguments(self) -> None:
        assert parse_hosts("Host(`example1.com`, `example2.org`)") == [
            "example1.com",
            "example2.org",
        ]

    def test_multiple_matchers(self) -> None:
        assert parse_hosts("Host(`example1.com`), Host(`example2.org`)") == [
            "example1.com",
            "example2.org",
        ]

    def test_combined_with_other_matchers(self) -> None:
        rule = "Host(`example1.com`) || Host(`example2.org`) && Path(`/foo`)"
        assert parse_hosts(rule) == ["example1.com", "example2.org"]

    def test_double_quoted_argument(self) -> None:
        assert parse_hosts('Host("example.com")') == ["example.com"]

    def test_non_host_matchers_ignored(self) -> None:
        assert parse_hosts("HostSNI(`*`)") == []
        assert parse_hosts("HostRegexp(`{sub:[a-z]+}.example.com`)") == []
        assert parse_hosts("PathPrefix(`/api`)") == []
        assert parse_hosts("") == []


class TestTraefikRouterInit:
    """Tests for base URL validation."""

    def test_rejects_url_without_scheme(self) -> None:
        with pytest.raises(ConfigError):
            TraefikRouter("traefik:8080")

    def test_rejects_unsupported_scheme(self) -> None:
        with pytest.raises(ConfigError):
            TraefikRouter("mailto:admin@example.com")

    def test_strips_trailing_slash(self) -> None:
        router = TraefikRouter("http://traefik:8080/")
        assert router.url == "http://traefik:8080"

    def test_basic_auth_configured(self) -> None:
        router = TraefikRouter("http://traefik:8080", username="admin", password="secret")
        assert router._session.auth is not None


class TestTraefikGetRoutes:
    """Tests for route retrieval from the Traefik API."""

    def test_get_routes(self) -> None:
        router = TraefikRouter("http://traefik:8080")
        routers = [
            {"rule": "Host(`example1.com`)", "name": "example1"},
            {"rule": "Host(`example2.org`)", "name": "example2"},
            {"rule": "Host(`example3.net`, `example4.net`)", "name": "example3"},
            {"rule": "Path(`/foo`)", "name": "path"},
        ]

        with patch.object(router._session, "get") as mock_get:
            mock_get.return_value = mock_response(routers)

            routes = asyncio.run(router.get_routes())

            mock_get.assert_called_once_with(
                "http://traefik:8080/api/http/routers", timeout=10.0, verify=True
            )

        assert routes == [
            Route(id="example1", host="example1.com"),
            Route(id="example2", host="example2.org"),
            Route(id="example3", host="example3.net"),
            Route(id="example3", host="example4.net"),
        ]

    def test_skips_malformed_entries(self) -> None:
        router = TraefikRouter("http://traefik:8080")
        routers = ["not-a-dict", {"name": "norule"}, {"name": "ok", "rule": "Host(`a.com`)"}]

        with patch.object(router._session, "get") as mock_get:
            mock_get.return_value = mock_response(routers)
            routes = asyncio.run(router.get_routes())

        assert routes == [Route(id="ok", host="a.com")]

    def test_router_filter(self) -> None:
        router = TraefikRouter("http://traefik:8080", router_filter="*-public@*")
        routers = [
            {"name": "app-public@docker", "rule": "Host(`app.example.com`)"},
            {"name": "app-internal@docker", "rule": "Host(`app.internal.example.com`)"},
        ]

        with patch.object(router._session, "get") as mock_get:
            mock_get.return_value = mock_response(routers)
            routes = asyncio.run(router.get_routes())

        assert [r.host for r in routes] == ["app.example.com"]

    def test_connection_error_raises_router_error(self) -> None:
        router = TraefikRouter("http://traefik:8080")

        with patch.object(router._session, "get") as mock_get:
            mock_get.side_effect = requests.exceptions.ConnectionError("Connection refused")

            with pytest.raises(RouterError, match="Connection refused"):
                asyncio.run(router.get_routes())

    def test_http_error_raises_router_error(self) -> None:
        router = TraefikRouter("http://traefik:8080")

        with patch.object(router._session, "get") as mock_get:
            response = mock_response([])
            response.raise_for_status.side_effect = requests.exceptions.HTTPError("502")
            mock_get.return_value = response

            with pytest.raises(RouterError):
                asyncio.run(router.get_routes())

    def test_unexpected_format_raises_router_error(self) -> None:
        router = TraefikRouter("http://traefik:8080")

        with patch.object(router._session, "get") as mock_get:
            mock_get.return_value = mock_response({"message": "not a list"})

            with pytest.raises(RouterError, match="expected list"):
                asyncio.run(router.get_routes())


class TestTraefikConnection:
    def test_test_connection_success(self) -> None:
        router = TraefikRouter("http://traefik:8080", verify_tls=False)

        with patch.object(router._session, "get") as mock_get:
            mock_get.return_value = mock_response({"Version": "2.10.4"})

            assert router.test_connection() is True
            mock_get.assert_called_once_with(
                "http://traefik:8080/api/version", timeout=10.0, verify=False
            )

    def test_test_connection_failure(self) -> None:
        router = TraefikRouter("http://traefik:8080")

        with patch.object(router._session, "get") as mock_get:
            mock_get.side_effect = requests.exceptions.ConnectionError("Connection refused")

            assert router.test_connection() is False
