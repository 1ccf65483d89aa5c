"""
Desired-state operations on apps: create, submit, scale, re-route, remove.

:class:`AppRunner` turns user intent into receptor desired LRP documents.
It enforces the client-side invariants (reserved debug guid, unique app
names, monitored port among the exposed ports) before anything is sent.
"""

import json
import logging
import re

from pydantic import BaseModel, Field, ValidationError

from ltc.common.exceptions import (
    AlreadyExistsError,
    AppNotFoundError,
    InvalidUserInputError,
    InvariantViolationError,
    ReservedNameError,
)
from ltc.common.models import (
    LATTICE_DOMAIN,
    RESERVED_DEBUG_GUID,
    RESERVED_DEBUG_GUID_MESSAGE,
    DesiredLRPCreateRequest,
    DesiredLRPUpdateRequest,
    DownloadAction,
    EnvironmentVariable,
    RunAction,
)
from ltc.receptor_client import ReceptorClient
from ltc.route_helpers import (
    RouteOverride,
    Routes,
    build_default_routes,
    build_override_routes,
    primary_port,
)

logger = logging.getLogger(__name__)

HEALTHCHECK_DOWNLOAD_URL = "http://file_server.service.dc1.consul:8080/v1/static/healthcheck.tgz"
HEALTHCHECK_PATH = "/tmp/healthcheck"
MONITOR_PORT_NOT_EXPOSED_MESSAGE = "Monitored port must be in the exposed ports"
APP_NAME_PATTERN = re.compile(r"[a-z0-9-]+")


def existing_app_error(name: str) -> AlreadyExistsError:
    return AlreadyExistsError(f"App {name}, is already running", details={"app": name})


def app_not_started_error(name: str) -> AppNotFoundError:
    return AppNotFoundError(f"{name}, is not started. Please start an app first", details={"app": name})


def check_app_name(name: str) -> None:
    """Reject the reserved debug guid and names outside lowercase letters, digits and dashes."""
    if name == RESERVED_DEBUG_GUID:
        raise ReservedNameError(RESERVED_DEBUG_GUID_MESSAGE, details={"app": name})
    if not APP_NAME_PATTERN.fullmatch(name):
        raise InvariantViolationError(
            f"Invalid app name {name}: only lowercase letters, digits and dashes are allowed",
            details={"app": name},
        )


class CreateAppParams(BaseModel):
    """
    Everything ``ltc create`` decided about a new app.

    Parameters
    ----------
    name : str
        App name, used as process guid, log guid and metrics guid
    rootfs : str
        Image URL in receptor form (``docker:///repo#tag``)
    start_command : str
        Executable run in the container
    app_args : list[str]
        Arguments to the start command
    working_dir : str
        Directory the start command runs in
    environment_variables : dict[str, str]
        Container environment; ``PORT`` is added on submission
    privileged : bool
        Run the app and its health check as root
    monitor : bool
        Health check the monitored port
    monitored_port : int
        Port probed by the health check
    exposed_ports : list[int]
        Container ports to expose
    route_overrides : list[RouteOverride]
        Replace the default routes when non-empty
    """

    name: str
    rootfs: str
    start_command: str = ""
    app_args: list[str] = Field(default_factory=list)
    working_dir: str = "/"
    environment_variables: dict[str, str] = Field(default_factory=dict)
    privileged: bool = False
    monitor: bool = True
    monitored_port: int = Field(0, ge=0, le=65535)
    instances: int = Field(1, ge=0)
    cpu_weight: int = Field(100, ge=1, le=100)
    memory_mb: int = Field(128, ge=0)
    disk_mb: int = Field(1024, ge=0)
    exposed_ports: list[int] = Field(default_factory=list)
    route_overrides: list[RouteOverride] = Field(default_factory=list)
    annotation: str | None = None


class AppRunner:
    """
    Create and manage desired LRPs.

    Parameters
    ----------
    receptor_client : ReceptorClient
        Control-plane client
    domain : str
        Routing domain of the target, appended to app hostnames

    Examples
    --------
    >>> async def example(client):
    ...     runner = AppRunner(client, "192.168.11.11.xip.io")
    ...     await runner.scale_app("myapp", 3)
    """

    def __init__(self, receptor_client: ReceptorClient, domain: str) -> None:
        self.receptor_client = receptor_client
        self.domain = domain

    async def create_app(self, params: CreateAppParams) -> None:
        """
        Desire a new app.

        Raises
        ------
        ReservedNameError
            If the name is the reserved debug guid
        AlreadyExistsError
            If an app with the same name is already desired
        InvariantViolationError
            If the name has characters outside `[a-z0-9-]` or the monitored
            port is not exposed
        """
        check_app_name(params.name)
        if params.monitor and params.monitored_port not in params.exposed_ports:
            raise InvariantViolationError(
                MONITOR_PORT_NOT_EXPOSED_MESSAGE,
                details={"monitored": params.monitored_port, "exposed": params.exposed_ports},
            )
        if await self._desired_lrp_exists(params.name):
            raise existing_app_error(params.name)

        await self.receptor_client.upsert_domain(LATTICE_DOMAIN, 0)
        await self.receptor_client.create_desired_lrp(self.build_desired_lrp(params))
        logger.info(f"Desired {params.name} with {params.instances} instance(s)")

    async def submit_lrp(self, lrp_json: bytes | str) -> str:
        """
        Desire an app from a user-written desired LRP document.

        Returns
        -------
        str
            The document's process guid

        Raises
        ------
        LatticeError
            On failure; ``details["process_guid"]`` names the guid when the
            document could be parsed
        """
        try:
            request = DesiredLRPCreateRequest.model_validate(json.loads(lrp_json))
        except (ValueError, ValidationError) as e:
            raise InvalidUserInputError(str(e)) from e

        guid = request.process_guid
        details = {"process_guid": guid}
        if guid == RESERVED_DEBUG_GUID:
            raise ReservedNameError(RESERVED_DEBUG_GUID_MESSAGE, details=details)
        if await self._desired_lrp_exists(guid):
            raise AlreadyExistsError(f"App {guid}, is already running", details=details)

        await self.receptor_client.upsert_domain(LATTICE_DOMAIN, 0)
        await self.receptor_client.create_desired_lrp(request)
        return guid

    async def scale_app(self, name: str, instances: int) -> None:
        """Change the desired instance count of a running app."""
        if not await self._desired_lrp_exists(name):
            raise app_not_started_error(name)
        await self.receptor_client.update_desired_lrp(name, DesiredLRPUpdateRequest(instances=instances))

    async def update_app_routes(self, name: str, overrides: list[RouteOverride]) -> None:
        """Replace the HTTP routes of a running app."""
        if not await self._desired_lrp_exists(name):
            raise app_not_started_error(name)
        routes = Routes(app_routes=build_override_routes(overrides, self.domain))
        await self.receptor_client.update_desired_lrp(
            name, DesiredLRPUpdateRequest(routes=routes.routing_info())
        )

    async def remove_app(self, name: str) -> None:
        if not await self._desired_lrp_exists(name):
            raise app_not_started_error(name)
        await self.receptor_client.delete_desired_lrp(name)

    async def _desired_lrp_exists(self, name: str) -> bool:
        desired_lrps = await self.receptor_client.desired_lrps()
        return any(desired.process_guid == name for desired in desired_lrps)

    def build_desired_lrp(self, params: CreateAppParams) -> DesiredLRPCreateRequest:
        """Compose the desired LRP document for ``params``."""
        primary = primary_port(params.monitored_port if params.monitor else 0, params.exposed_ports)

        env = [EnvironmentVariable(name=name, value=value) for name, value in params.environment_variables.items()]
        env.append(EnvironmentVariable(name="PORT", value=str(primary)))

        if params.route_overrides:
            app_routes = build_override_routes(params.route_overrides, self.domain)
        else:
            app_routes = build_default_routes(params.name, params.exposed_ports, primary, self.domain)

        monitor = None
        if params.monitor:
            monitor = RunAction(
                path=HEALTHCHECK_PATH,
                args=["-port", str(params.monitored_port)],
                log_source="HEALTH",
                privileged=params.privileged,
            ).to_wire()

        return DesiredLRPCreateRequest(
            process_guid=params.name,
            domain=LATTICE_DOMAIN,
            rootfs=params.rootfs,
            instances=params.instances,
            env=env,
            setup=DownloadAction(from_=HEALTHCHECK_DOWNLOAD_URL, to="/tmp").to_wire(),
            action=RunAction(
                path=params.start_command,
                args=params.app_args,
                dir=params.working_dir,
                privileged=params.privileged,
            ).to_wire(),
            monitor=monitor,
            start_timeout=0,
            disk_mb=params.disk_mb,
            memory_mb=params.memory_mb,
            cpu_weight=params.cpu_weight,
            privileged=params.privileged,
            ports=params.exposed_ports,
            routes=Routes(app_routes=app_routes).routing_info(),
            log_guid=params.name,
            log_source="APP",
            metrics_guid=params.name,
            annotation=params.annotation,
        )
