"""
Routing information embedded in desired LRPs.

The receptor treats ``routes`` as an opaque map keyed by router name. HTTP
routes live under ``cf-router`` as a list of ``{hostnames, port}`` entries;
TCP routes under ``tcp-router`` as ``{external_port, container_port}``.
"""

import logging
from typing import Any, NamedTuple

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ltc.common.exceptions import MalformedRouteError

logger = logging.getLogger(__name__)

APP_ROUTER = "cf-router"
TCP_ROUTER = "tcp-router"

INVALID_PORT_ERROR_MESSAGE = "Invalid port specified. Ports must be a positive integer less than 65536."
MALFORMED_ROUTE_ERROR_MESSAGE = "Malformed route. Routes must be of the format route:port"


class AppRoute(BaseModel):
    """Hostnames routed by the HTTP router to one container port."""

    hostnames: list[str] = Field(default_factory=list)
    port: int = Field(..., ge=0, le=65535)


class TcpRoute(BaseModel):
    """External port routed by the TCP router to one container port."""

    external_port: int = Field(..., ge=0, le=65535)
    container_port: int = Field(..., ge=0, le=65535)


_APP_ROUTES = TypeAdapter(list[AppRoute])
_TCP_ROUTES = TypeAdapter(list[TcpRoute])


class Routes(BaseModel):
    """HTTP and TCP routes of one desired LRP."""

    app_routes: list[AppRoute] | None = None
    tcp_routes: list[TcpRoute] | None = None

    def routing_info(self) -> dict[str, Any]:
        """Serialize into the receptor's routing-info map."""
        info: dict[str, Any] = {}
        if self.app_routes is not None:
            info[APP_ROUTER] = [route.model_dump() for route in self.app_routes]
        if self.tcp_routes is not None:
            info[TCP_ROUTER] = [route.model_dump() for route in self.tcp_routes]
        return info

    def hostnames_by_port(self) -> dict[int, list[str]]:
        """HTTP hostnames grouped by container port, in route order."""
        by_port: dict[int, list[str]] = {}
        for route in self.app_routes or []:
            by_port.setdefault(route.port, []).extend(route.hostnames)
        return by_port

    @classmethod
    def from_routing_info(cls, routing_info: dict[str, Any] | None) -> "Routes":
        """
        Parse a receptor routing-info map.

        Entries for routers other than ``cf-router`` and ``tcp-router`` are
        ignored. An entry that does not parse is logged and dropped.
        """
        routes = cls()
        if not routing_info:
            return routes

        data = routing_info.get(APP_ROUTER)
        if data is not None:
            try:
                routes.app_routes = _APP_ROUTES.validate_python(data)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed {APP_ROUTER} routes: {e}")

        data = routing_info.get(TCP_ROUTER)
        if data is not None:
            try:
                routes.tcp_routes = _TCP_ROUTES.validate_python(data)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed {TCP_ROUTER} routes: {e}")

        return routes


class RouteOverride(NamedTuple):
    """User-requested ``<hostname_prefix>.<domain>`` route to ``port``."""

    hostname_prefix: str
    port: int


def primary_port(monitored_port: int, exposed_ports: list[int]) -> int:
    """
    Port that receives the bare ``<name>.<domain>`` route.

    The monitored port wins; without one, the first exposed port; 0 when
    nothing is exposed.
    """
    if monitored_port:
        return monitored_port
    if exposed_ports:
        return exposed_ports[0]
    return 0


def build_default_routes(
    app_name: str, exposed_ports: list[int], primary: int, domain: str
) -> list[AppRoute]:
    """
    Default HTTP routes for an app.

    Every exposed port gets ``<name>-<port>.<domain>``; the primary port
    additionally gets ``<name>.<domain>`` ahead of it.

    Examples
    --------
    >>> routes = build_default_routes("myapp", [80, 443], 80, "example.io")
    >>> [route.hostnames for route in routes]
    [['myapp.example.io', 'myapp-80.example.io'], ['myapp-443.example.io']]
    """
    routes = []
    for port in exposed_ports:
        hostnames = []
        if port == primary:
            hostnames.append(f"{app_name}.{domain}")
        hostnames.append(f"{app_name}-{port}.{domain}")
        routes.append(AppRoute(hostnames=hostnames, port=port))
    return routes


def build_override_routes(overrides: list[RouteOverride], domain: str) -> list[AppRoute]:
    """Group route overrides by port, keeping first-seen port order."""
    by_port: dict[int, list[str]] = {}
    for override in overrides:
        by_port.setdefault(override.port, []).append(f"{override.hostname_prefix}.{domain}")
    return [AppRoute(hostnames=hostnames, port=port) for port, hostnames in by_port.items()]


def parse_port(value: str) -> int:
    """
    Parse a port number in ``1..65535``.

    Raises
    ------
    MalformedRouteError
        If ``value`` is not an integer in range
    """
    try:
        port = int(value)
    except ValueError:
        raise MalformedRouteError(INVALID_PORT_ERROR_MESSAGE, details={"port": value}) from None
    if port <= 0 or port > 65535:
        raise MalformedRouteError(INVALID_PORT_ERROR_MESSAGE, details={"port": value})
    return port


def parse_route_overrides(routes: str) -> list[RouteOverride]:
    """
    Parse a comma separated ``hostname:port`` list.

    Empty entries are skipped.

    Raises
    ------
    MalformedRouteError
        If an entry is not exactly one ``hostname:port`` pair, or its
        hostname is empty or its port invalid

    Examples
    --------
    >>> parse_route_overrides("web:8080,admin:9000")
    [RouteOverride(hostname_prefix='web', port=8080), RouteOverride(hostname_prefix='admin', port=9000)]
    """
    overrides = []
    for route in routes.split(","):
        if not route:
            continue
        parts = route.split(":")
        if len(parts) != 2:
            raise MalformedRouteError(MALFORMED_ROUTE_ERROR_MESSAGE, details={"route": route})
        hostname_prefix = parts[0].strip()
        if not hostname_prefix:
            raise MalformedRouteError(MALFORMED_ROUTE_ERROR_MESSAGE, details={"route": route})
        overrides.append(RouteOverride(hostname_prefix, parse_port(parts[1])))
    return overrides
