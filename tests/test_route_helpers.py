"""Tests for route parsing and routing-info conversion."""

import pytest

from ltc.common.exceptions import MalformedRouteError
from ltc.route_helpers import (
    INVALID_PORT_ERROR_MESSAGE,
    MALFORMED_ROUTE_ERROR_MESSAGE,
    AppRoute,
    RouteOverride,
    Routes,
    TcpRoute,
    build_default_routes,
    build_override_routes,
    parse_route_overrides,
    primary_port,
)


class TestParseRouteOverrides:
    """Tests for the hostname:port list."""

    def test_parses_entries(self):
        """Test a list with a trailing comma."""
        assert parse_route_overrides("web:8080,admin:9000,") == [
            RouteOverride("web", 8080),
            RouteOverride("admin", 9000),
        ]

    def test_empty(self):
        """Test that an empty list yields no overrides."""
        assert parse_route_overrides("") == []

    @pytest.mark.parametrize("routes", ["web", "web:8080,admin", ":8080", "a:80:90", "web:8080:"])
    def test_malformed(self, routes):
        """Test entries without a port or hostname, or with more than one colon."""
        with pytest.raises(MalformedRouteError, match=MALFORMED_ROUTE_ERROR_MESSAGE):
            parse_route_overrides(routes)

    @pytest.mark.parametrize("routes", ["web:http", "web:0", "web:65536", "web:-1"])
    def test_invalid_port(self, routes):
        """Test ports outside 1..65535."""
        with pytest.raises(MalformedRouteError) as exc_info:
            parse_route_overrides(routes)

        assert str(exc_info.value) == INVALID_PORT_ERROR_MESSAGE


class TestDefaultRoutes:
    """Tests for generated routes."""

    def test_primary_port(self):
        """Test monitored port, then first exposed, then none."""
        assert primary_port(8080, [80, 8080]) == 8080
        assert primary_port(0, [443, 80]) == 443
        assert primary_port(0, []) == 0

    def test_bare_name_only_on_primary(self):
        """Test that only the primary port gets the bare app hostname."""
        routes = build_default_routes("app", [80, 8080], 8080, "lattice.io")

        assert routes == [
            AppRoute(hostnames=["app-80.lattice.io"], port=80),
            AppRoute(hostnames=["app.lattice.io", "app-8080.lattice.io"], port=8080),
        ]

    def test_override_grouping(self):
        """Test that overrides sharing a port share a route."""
        routes = build_override_routes(
            [RouteOverride("a", 80), RouteOverride("b", 9000), RouteOverride("c", 80)], "lattice.io"
        )

        assert routes == [
            AppRoute(hostnames=["a.lattice.io", "c.lattice.io"], port=80),
            AppRoute(hostnames=["b.lattice.io"], port=9000),
        ]


class TestRoutingInfo:
    """Tests for conversion to and from the receptor's routing map."""

    def test_round_trip(self):
        """Test both router keys."""
        routes = Routes(
            app_routes=[AppRoute(hostnames=["app.io"], port=80)],
            tcp_routes=[TcpRoute(external_port=50000, container_port=5222)],
        )

        info = routes.routing_info()

        assert info == {
            "cf-router": [{"hostnames": ["app.io"], "port": 80}],
            "tcp-router": [{"external_port": 50000, "container_port": 5222}],
        }
        assert Routes.from_routing_info(info) == routes

    def test_unset_routers_are_omitted(self):
        """Test that missing route lists serialize to nothing."""
        assert Routes().routing_info() == {}
        assert Routes(app_routes=[]).routing_info() == {"cf-router": []}

    def test_unknown_and_malformed_entries(self):
        """Test that foreign routers and bad entries are dropped."""
        routes = Routes.from_routing_info(
            {
                "diego-ssh": {"container_port": 2222},
                "cf-router": [{"hostnames": ["x"], "port": "not-a-port"}],
            }
        )

        assert routes.app_routes is None
        assert routes.tcp_routes is None

    def test_hostnames_by_port(self):
        """Test grouping hostnames for display."""
        routes = Routes(
            app_routes=[
                AppRoute(hostnames=["a.io"], port=80),
                AppRoute(hostnames=["b.io"], port=8080),
                AppRoute(hostnames=["c.io"], port=80),
            ]
        )

        assert routes.hostnames_by_port() == {80: ["a.io", "c.io"], 8080: ["b.io"]}
