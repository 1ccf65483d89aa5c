"""``create``, ``submit-lrp``, ``scale``, ``update-routes`` and ``remove``."""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from datetime import timedelta
from pathlib import Path

from ltc.app_examiner import AppExaminer
from ltc.app_runner import AppRunner, CreateAppParams, check_app_name
from ltc.clock import Clock
from ltc.common.exceptions import LatticeError, MalformedRouteError
from ltc.docker_metadata import DockerMetadataFetcher, ImageMetadata, format_for_receptor
from ltc.exit_handler import ExitCode, ExitHandler
from ltc.logs import ConsoleTailedLogsOutputter
from ltc.route_helpers import (
    RouteOverride,
    build_default_routes,
    parse_port,
    parse_route_overrides,
    primary_port,
)
from ltc.terminal import TerminalUI, green, red

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
POLL_INTERVAL_SECONDS = 1
PLACEMENT_ERROR_MESSAGE = (
    "Error, could not place all instances: insufficient resources. "
    "Try requesting fewer instances or reducing the requested memory or disk capacity."
)


def parse_env_var_pair(pair: str) -> tuple[str, str]:
    """
    Split ``NAME=VALUE``; a bare ``NAME`` has an empty value.

    Examples
    --------
    >>> parse_env_var_pair("FOO=bar=baz")
    ('FOO', 'bar=baz')
    >>> parse_env_var_pair("HOME")
    ('HOME', '')
    """
    name, _, value = pair.partition("=")
    return name, value


def parse_ports(ports: str) -> list[int]:
    """
    Parse a comma separated port list, ascending.

    Raises
    ------
    MalformedRouteError
        If a port is not an integer in ``1..65535``
    """
    return sorted(parse_port(port.strip()) for port in ports.split(",") if port.strip())


class AppRunnerCommands:
    """
    Commands that change desired app state.

    Parameters
    ----------
    ui : TerminalUI
        Output terminal
    app_runner : AppRunner
        Desired LRP operations
    app_examiner : AppExaminer
        Used to poll instance counts
    docker_metadata_fetcher : DockerMetadataFetcher
        Image metadata lookups for ``create``
    tailed_logs_outputter : ConsoleTailedLogsOutputter
        Prints app logs while ``create`` waits
    clock : Clock
        Poll timing
    exit_handler : ExitHandler
        Exit path
    domain : str
        System domain, used to print app URLs
    env : Mapping[str, str], optional
        Environment ``-e NAME`` copies from (default: ``os.environ``)
    """

    def __init__(
        self,
        ui: TerminalUI,
        app_runner: AppRunner,
        app_examiner: AppExaminer,
        docker_metadata_fetcher: DockerMetadataFetcher,
        tailed_logs_outputter: ConsoleTailedLogsOutputter,
        clock: Clock,
        exit_handler: ExitHandler,
        domain: str,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.ui = ui
        self.app_runner = app_runner
        self.app_examiner = app_examiner
        self.docker_metadata_fetcher = docker_metadata_fetcher
        self.tailed_logs_outputter = tailed_logs_outputter
        self.clock = clock
        self.exit_handler = exit_handler
        self.domain = domain
        self.env = env if env is not None else os.environ

    # -------------------------------------------------------------------------
    # create
    # -------------------------------------------------------------------------

    async def create_app(
        self,
        name: str,
        docker_image: str,
        start_command: list[str] | None = None,
        working_dir: str = "",
        env_vars: list[str] | None = None,
        run_as_root: bool = False,
        cpu_weight: int = 100,
        memory_mb: int = 128,
        disk_mb: int = 1024,
        ports: str = "",
        monitored_port: int = 0,
        no_monitor: bool = False,
        routes: str = "",
        instances: int = 1,
        timeout: float = 60,
    ) -> None:
        """Desire a docker app and wait for it to come up."""
        start_command = list(start_command or [])

        if cpu_weight < 1 or cpu_weight > 100:
            self.ui.say_incorrect_usage("Invalid CPU Weight")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            check_app_name(name)
            rootfs = format_for_receptor(docker_image)
        except LatticeError as e:
            self.ui.say_line(f"Error creating app: {e}")
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        try:
            route_overrides = parse_route_overrides(routes)
            exposed_ports = parse_ports(ports) if ports else []
        except MalformedRouteError as e:
            self.ui.say_line(str(e))
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        metadata = ImageMetadata()
        if not working_dir or not start_command or not exposed_ports:
            try:
                metadata = await self.docker_metadata_fetcher.fetch_metadata(docker_image)
            except LatticeError as e:
                self.ui.say_line(f"Error fetching image metadata: {e}")
                self.exit_handler.exit(ExitCode.BAD_DOCKER)

        if not exposed_ports:
            exposed_ports = self._exposed_ports_from_metadata(metadata)

        if no_monitor:
            self.ui.say_line("No ports will be monitored.")
        else:
            monitored_port = monitored_port or min(exposed_ports)
            self.ui.say_line(f"Monitoring the app on port {monitored_port}...")

        if not working_dir:
            self.ui.say_line("No working directory specified, using working directory from the image metadata...")
            if metadata.working_dir:
                working_dir = metadata.working_dir
                self.ui.say_line("Working directory is:")
                self.ui.say_line(working_dir)
            else:
                working_dir = "/"

        if not start_command:
            if not metadata.start_command:
                self.ui.say_line("Unable to determine start command from image metadata.")
                self.exit_handler.exit(ExitCode.BAD_DOCKER)
            self.ui.say_line("No start command specified, using start command from the image metadata...")
            start_command = metadata.start_command
            self.ui.say_line("Start command is:")
            self.ui.say_line(" ".join(start_command))

        params = CreateAppParams(
            name=name,
            rootfs=rootfs,
            start_command=start_command[0],
            app_args=start_command[1:],
            working_dir=working_dir,
            environment_variables=self.build_app_environment(env_vars or [], name),
            privileged=run_as_root,
            monitor=not no_monitor,
            monitored_port=0 if no_monitor else monitored_port,
            instances=instances,
            cpu_weight=cpu_weight,
            memory_mb=memory_mb,
            disk_mb=disk_mb,
            exposed_ports=exposed_ports,
            route_overrides=route_overrides,
        )

        try:
            await self.app_runner.create_app(params)
        except LatticeError as e:
            self.ui.say_line(f"Error creating app: {e}")
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        await self.wait_for_app_creation(params, timeout)

    def _exposed_ports_from_metadata(self, metadata: ImageMetadata) -> list[int]:
        if metadata.ports.exposed:
            listed = ", ".join(str(port) for port in metadata.ports.exposed)
            self.ui.say_line(
                f"No port specified, using exposed ports from the image metadata.\n\tExposed Ports: {listed}"
            )
            return list(metadata.ports.exposed)

        self.ui.say_line(
            f"No port specified, image metadata did not contain exposed ports. Defaulting to {DEFAULT_PORT}."
        )
        return [DEFAULT_PORT]

    async def wait_for_app_creation(self, params: CreateAppParams, timeout: float) -> None:
        """Tail the app's logs until one instance runs, then print its URLs."""
        self.ui.say_line(f"Creating App: {params.name}")

        tail = asyncio.create_task(self.tailed_logs_outputter.output_tailed_logs(params.name))
        try:
            ok = await self._poll_until_running(params.name, lambda running: running >= 1, timeout, "start")
        finally:
            await self.tailed_logs_outputter.stop_outputting()
            await asyncio.gather(tail, return_exceptions=True)

        if ok:
            self.ui.say_line(green(f"{params.name} is now running."))
            self.ui.say_line("App is reachable at:")
        else:
            self.ui.say_line("App will be reachable at:")

        if params.route_overrides:
            for override in params.route_overrides:
                self.ui.say_line(green(self._url_for(override.hostname_prefix)))
            return

        self.ui.say_line(green(self._url_for(params.name)))
        primary = primary_port(params.monitored_port, params.exposed_ports)
        for route in build_default_routes(params.name, params.exposed_ports, primary, self.domain):
            self.ui.say_line(green(self._url_for(f"{params.name}-{route.port}")))

    def _url_for(self, hostname_prefix: str) -> str:
        return f"http://{hostname_prefix}.{self.domain}"

    def build_app_environment(self, env_vars: list[str], app_name: str) -> dict[str, str]:
        """
        Container environment from ``-e`` flags.

        A flag without a value copies the variable from the invoking
        environment. ``PROCESS_GUID`` defaults to the app name.
        """
        environment = {}
        for pair in env_vars:
            name, value = parse_env_var_pair(pair)
            if not value:
                value = self.env.get(name, "")
            environment[name] = value
        environment.setdefault("PROCESS_GUID", app_name)
        return environment

    # -------------------------------------------------------------------------
    # polling
    # -------------------------------------------------------------------------

    async def _poll_until_running(
        self, app_name: str, is_up: Callable[[int], bool], timeout: float, action: str
    ) -> bool:
        placement_error = False

        async def up() -> bool:
            nonlocal placement_error
            running, has_placement_error = await self.app_examiner.running_app_instances_info(app_name)
            if has_placement_error:
                self.ui.say_line(red(PLACEMENT_ERROR_MESSAGE))
                placement_error = True
                return True
            return is_up(running)

        ok = await self._poll_until_success(timeout, up)

        if placement_error:
            self.exit_handler.exit(ExitCode.PLACEMENT_ERROR)

        if not ok:
            if action == "start":
                self.ui.say_line(red(f"{app_name} took too long to start."))
                self.ui.say_line("This typically happens because docker layers can take time to download.")
                self.ui.say_line("Lattice is still downloading your application in the background.")
            else:
                self.ui.say_line(red("Timed out waiting for the container to scale."))
                self.ui.say_line("Lattice is still scaling your application in the background.")
            self.ui.say_line(f"To view logs:\n\tltc logs {app_name}")
            self.ui.say_line(f"To view status:\n\tltc status {app_name}")
            self.ui.say_new_line()
        return ok

    async def _poll_until_success(self, timeout: float, check: Callable[[], Awaitable[bool]]) -> bool:
        deadline = self.clock.now() + timedelta(seconds=timeout)
        while self.clock.now() < deadline:
            try:
                done = await check()
            except LatticeError as e:
                logger.debug(f"Poll failed, retrying: {e!r}")
                done = False
            if done:
                self.ui.say_new_line()
                return True
            self.ui.dot()
            await self.clock.sleep(POLL_INTERVAL_SECONDS)
        self.ui.say_new_line()
        return False

    # -------------------------------------------------------------------------
    # submit-lrp, scale, update-routes, remove
    # -------------------------------------------------------------------------

    async def submit_lrp(self, path: str) -> None:
        if not path:
            self.ui.say_line("Path to JSON is required")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            lrp_json = Path(path).read_bytes()
        except OSError as e:
            self.ui.say_line(f"Error reading file: {e}")
            self.exit_handler.exit(ExitCode.FILE_SYSTEM_ERROR)

        try:
            guid = await self.app_runner.submit_lrp(lrp_json)
        except LatticeError as e:
            self.ui.say_line(f"Error creating {e.details.get('process_guid', '')}: {e}")
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        self.ui.say_line(green(f"Successfully submitted {guid}."))
        self.ui.say_line(f"To view the status of your application: ltc status {guid}")

    async def scale_app(self, name: str, instances_arg: str, timeout: float = 60) -> None:
        """Scale an app and wait until the new instance count runs."""
        if not name or not instances_arg:
            self.ui.say_incorrect_usage("Please enter 'ltc scale APP_NAME NUMBER_OF_INSTANCES'")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            instances = int(instances_arg)
        except ValueError:
            self.ui.say_incorrect_usage("Number of Instances must be an integer")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        if instances < 1:
            self.ui.say_incorrect_usage("Number of Instances must be greater than 0. To stop an app use 'ltc remove'")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            await self.app_runner.scale_app(name, instances)
        except LatticeError as e:
            self.ui.say_line(f"Error Scaling App to {instances} instances: {e}")
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        self.ui.say_line(f"Scaling {name} to {instances} instances")

        if await self._poll_until_running(name, lambda running: running == instances, timeout, "scale"):
            self.ui.say_line(green("App Scaled Successfully"))

    async def update_app_routes(self, name: str, routes: str | None) -> None:
        if not name or routes is None:
            self.ui.say_incorrect_usage("Please enter 'ltc update-routes APP_NAME NEW_ROUTES'")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            overrides: list[RouteOverride] = parse_route_overrides(routes)
        except MalformedRouteError as e:
            self.ui.say_line(str(e))
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            await self.app_runner.update_app_routes(name, overrides)
        except LatticeError as e:
            self.ui.say_line(f"Error updating application: {e}")
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        self.ui.say_line(
            f"Updating {name} routes. You can check this app's current routes by running 'ltc status {name}'"
        )

    async def remove_apps(self, names: list[str]) -> None:
        if not names:
            self.ui.say_incorrect_usage("App Name required")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        for name in names:
            self.ui.say_line(f"Removing {name}...")
            try:
                await self.app_runner.remove_app(name)
            except LatticeError as e:
                self.ui.say_line(f"Error stopping {name}: {e}")
                self.exit_handler.exit(ExitCode.COMMAND_FAILED)
