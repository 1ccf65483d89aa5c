"""CLI entry point for ltc.

Every command builds its own receptor and doppler clients, runs one
coroutine under the exit handler and closes the clients afterwards.
Commands other than ``target`` and ``help`` first verify the saved target.
"""

import contextlib
import logging
import re
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Annotated

import click
import typer
from rich.console import Console
from typer.core import TyperGroup

from ltc import __version__
from ltc.app_examiner import AppExaminer
from ltc.app_runner import AppRunner
from ltc.clock import Clock
from ltc.commands.app_examiner import AppExaminerCommands
from ltc.commands.app_runner import AppRunnerCommands
from ltc.commands.config import AUTHENTICATE_ERROR_MESSAGE, CONNECT_ERROR_MESSAGE, ConfigCommands
from ltc.commands.logs import LogsCommands
from ltc.commands.task import TaskCommands
from ltc.common.config import CliSettings, setup_logging
from ltc.common.exceptions import PersistenceError
from ltc.config import Config, FilePersister
from ltc.docker_metadata import DockerMetadataFetcher
from ltc.exit_handler import ExitCode, ExitHandler
from ltc.integration import ClusterTestError, IntegrationTestRunner
from ltc.logs import ConsoleTailedLogsOutputter, LogReader, NoaaConsumer
from ltc.receptor_client import ReceptorClient
from ltc.target_verifier import BlobTargetVerifier, TargetVerifier
from ltc.task_examiner import TaskExaminer
from ltc.task_runner import TaskRunner
from ltc.terminal import TerminalUI

logger = logging.getLogger(__name__)


class LatticeGroup(TyperGroup):
    """Command group that reports usage errors with the invalid syntax status."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except click.UsageError as e:
            console = Console(stderr=True, highlight=False, soft_wrap=True)
            console.print(f"Incorrect Usage: {e.format_message()}", markup=False)
            if e.ctx is not None:
                console.print(e.ctx.get_help(), markup=False)
            raise typer.Exit(int(ExitCode.INVALID_SYNTAX)) from None


app = typer.Typer(
    name="ltc",
    cls=LatticeGroup,
    help="ltc - Command line interface for Lattice.",
    no_args_is_help=True,
    add_completion=False,
)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def parse_duration(value: str) -> float:
    """
    Parse ``2s``, ``500ms``, ``1m30s`` or a bare number of seconds.

    Raises
    ------
    typer.BadParameter
        If ``value`` is not a duration
    """
    value = value.strip()
    try:
        return float(value)
    except ValueError:
        pass
    position, seconds = 0, 0.0
    for match in _DURATION_PART.finditer(value):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(value):
        raise typer.BadParameter(f"invalid duration '{value}'")
    return seconds


Duration = Annotated[float | None, typer.Option(parser=parse_duration, metavar="DURATION")]


# =============================================================================
# Per-invocation state
# =============================================================================


class Session:
    """Settings, saved config and terminal shared by one invocation."""

    def __init__(self, settings: CliSettings, config: Config) -> None:
        self.settings = settings
        self.config = config
        self.exit_handler = ExitHandler()
        self.ui = TerminalUI(exit_handler=self.exit_handler)
        self.clock = Clock()

    def run(self, main: Callable[[], Awaitable[None]], verify: bool = True) -> None:
        async def supervised() -> None:
            if verify:
                await self.verify_target()
            await main()

        self.exit_handler.run(supervised())

    async def verify_target(self) -> None:
        result = await TargetVerifier().verify_target(self.config.receptor_url)
        if not result.reachable:
            logger.debug(f"Target verification failed: {result.error!r}")
            self.ui.say_line(CONNECT_ERROR_MESSAGE)
            self.exit_handler.exit(ExitCode.BAD_TARGET)
        if result.error is not None:
            self.ui.say_line(f"Error verifying target: {result.error}")
            self.exit_handler.exit(ExitCode.BAD_TARGET)
        if not result.authorized:
            self.ui.say_line(AUTHENTICATE_ERROR_MESSAGE)
            self.exit_handler.exit(ExitCode.BAD_TARGET)

    @contextlib.asynccontextmanager
    async def clients(self) -> AsyncIterator["Clients"]:
        receptor_client = ReceptorClient(self.config.receptor_url)
        noaa_consumer = NoaaConsumer(self.config.loggregator_url)
        try:
            yield Clients(self, receptor_client, noaa_consumer)
        finally:
            await noaa_consumer.close()
            await receptor_client.close()


class Clients:
    """Command objects wired to one receptor client and one log consumer."""

    def __init__(self, session: Session, receptor_client: ReceptorClient, noaa_consumer: NoaaConsumer) -> None:
        self.session = session
        self.receptor_client = receptor_client
        self.noaa_consumer = noaa_consumer
        self.app_examiner = AppExaminer(receptor_client, noaa_consumer)
        self.task_examiner = TaskExaminer(receptor_client)

    def _outputter(self) -> ConsoleTailedLogsOutputter:
        return ConsoleTailedLogsOutputter(self.session.ui, LogReader(self.noaa_consumer))

    def app_runner_commands(self) -> AppRunnerCommands:
        s = self.session
        return AppRunnerCommands(
            s.ui,
            AppRunner(self.receptor_client, s.config.target),
            self.app_examiner,
            DockerMetadataFetcher(),
            self._outputter(),
            s.clock,
            s.exit_handler,
            s.config.target,
        )

    def app_examiner_commands(self) -> AppExaminerCommands:
        s = self.session
        return AppExaminerCommands(
            s.ui, self.app_examiner, self.task_examiner, s.clock, s.exit_handler, s.config.target
        )

    def logs_commands(self) -> LogsCommands:
        s = self.session
        return LogsCommands(s.ui, self.app_examiner, self._outputter(), s.exit_handler)

    def task_commands(self) -> TaskCommands:
        s = self.session
        return TaskCommands(
            s.ui, TaskRunner(self.receptor_client, self.task_examiner), self.task_examiner, s.exit_handler
        )


def _session(ctx: typer.Context) -> Session:
    return ctx.find_root().obj


def _timeout(session: Session, timeout: float | None) -> float:
    return timeout if timeout is not None else session.settings.timeout


def _version_callback(value: bool) -> None:
    if value:
        Console().print(f"ltc version {__version__}", highlight=False)
        raise typer.Exit()


@app.callback()
def root(
    ctx: typer.Context,
    debug: Annotated[bool, typer.Option("--debug", help="Log diagnostics to stderr")] = False,
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=_version_callback, is_eager=True, help="Print the version"),
    ] = False,
) -> None:
    """Command line interface for Lattice."""
    setup_logging(debug=debug)
    settings = CliSettings()
    config = Config(FilePersister(settings.config_path))
    try:
        config.load()
    except PersistenceError as e:
        Console().print(str(e), highlight=False)
        raise typer.Exit(int(ExitCode.FILE_SYSTEM_ERROR)) from None
    ctx.obj = Session(settings, config)


def command(name: str, *aliases: str, **kwargs):
    """Register a command under ``name`` plus hidden aliases."""

    def register(func):
        app.command(name, **kwargs)(func)
        for alias in aliases:
            app.command(alias, hidden=True, **kwargs)(func)
        return func

    return register


# =============================================================================
# Target configuration
# =============================================================================


@command("target", "t")
def cmd_target(
    ctx: typer.Context,
    target: Annotated[str | None, typer.Argument(help="Lattice domain, e.g. 192.168.11.11.xip.io")] = None,
) -> None:
    """Show or set the lattice target."""
    s = _session(ctx)
    commands = ConfigCommands(s.ui, s.config, TargetVerifier(), BlobTargetVerifier(), s.exit_handler)
    s.run(lambda: commands.target(target), verify=False)


@command("target-blob")
def cmd_target_blob(
    ctx: typer.Context,
    endpoint: Annotated[str | None, typer.Argument(metavar="HOST:PORT")] = None,
) -> None:
    """Show or set the blob store target."""
    s = _session(ctx)
    commands = ConfigCommands(s.ui, s.config, TargetVerifier(), BlobTargetVerifier(), s.exit_handler)
    s.run(lambda: commands.target_blob(endpoint))


# =============================================================================
# Apps
# =============================================================================


@command("create", "cr")
def cmd_create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="App name")],
    docker_image: Annotated[str, typer.Argument(help="Docker image, e.g. cloudfoundry/lattice-app")],
    start_command: Annotated[list[str] | None, typer.Argument(help="-- START_COMMAND [ARGS...]")] = None,
    working_dir: Annotated[str, typer.Option("--working-dir", "-w", help="Working directory")] = "",
    env: Annotated[list[str] | None, typer.Option("--env", "-e", help="NAME[=VALUE], repeatable")] = None,
    run_as_root: Annotated[bool, typer.Option("--run-as-root", "-r", help="Run as root")] = False,
    cpu_weight: Annotated[int, typer.Option("--cpu-weight", "-c", help="Relative CPU weight (1-100)")] = 100,
    memory_mb: Annotated[int, typer.Option("--memory-mb", "-m", help="Memory limit in MB")] = 128,
    disk_mb: Annotated[int, typer.Option("--disk-mb", "-d", help="Disk limit in MB")] = 1024,
    ports: Annotated[str, typer.Option("--ports", "-p", help="Comma separated ports to expose")] = "",
    monitored_port: Annotated[int, typer.Option("--monitored-port", "-M", help="Port to health check")] = 0,
    no_monitor: Annotated[bool, typer.Option("--no-monitor", help="Disable health checking")] = False,
    routes: Annotated[str, typer.Option("--routes", "-R", help="Comma separated hostname:port routes")] = "",
    instances: Annotated[int, typer.Option("--instances", "-i", help="Number of instances")] = 1,
    timeout: Duration = None,
) -> None:
    """Create a docker app on lattice."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.app_runner_commands().create_app(
                name,
                docker_image,
                start_command=start_command,
                working_dir=working_dir,
                env_vars=env,
                run_as_root=run_as_root,
                cpu_weight=cpu_weight,
                memory_mb=memory_mb,
                disk_mb=disk_mb,
                ports=ports,
                monitored_port=monitored_port,
                no_monitor=no_monitor,
                routes=routes,
                instances=instances,
                timeout=_timeout(s, timeout),
            )

    s.run(main)


@command("submit-lrp")
def cmd_submit_lrp(ctx: typer.Context, path: Annotated[str, typer.Argument(help="Desired LRP JSON file")]) -> None:
    """Create an app from a desired LRP JSON document."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.app_runner_commands().submit_lrp(path)

    s.run(main)


@command("scale")
def cmd_scale(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="App name")],
    instances: Annotated[str, typer.Argument(help="Number of instances")],
    timeout: Duration = None,
) -> None:
    """Change the number of running instances of an app."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.app_runner_commands().scale_app(name, instances, _timeout(s, timeout))

    s.run(main)


@command("update-routes")
def cmd_update_routes(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="App name")],
    routes: Annotated[str, typer.Argument(help="Comma separated hostname:port routes")],
) -> None:
    """Replace the routes of an app."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.app_runner_commands().update_app_routes(name, routes)

    s.run(main)


@command("remove", "rm")
def cmd_remove(ctx: typer.Context, names: Annotated[list[str], typer.Argument(help="App names")]) -> None:
    """Stop and remove apps."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.app_runner_commands().remove_apps(names)

    s.run(main)


@command("list", "li")
def cmd_list(ctx: typer.Context) -> None:
    """List apps and tasks."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.app_examiner_commands().list_apps()

    s.run(main)


@command("status", "st")
def cmd_status(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="App name")],
    summary: Annotated[bool, typer.Option("--summary", "-s", help="One line per instance")] = False,
    rate: Duration = None,
) -> None:
    """Show the status of an app."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.app_examiner_commands().app_status(name, summary=summary, rate=rate)

    s.run(main)


@command("visualize", "vz")
def cmd_visualize(
    ctx: typer.Context,
    rate: Duration = None,
    graphical: Annotated[bool, typer.Option("--graphical", "-g", help="Full screen dashboard")] = False,
) -> None:
    """Show the distribution of instances over cells."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.app_examiner_commands().visualize(rate=rate, graphical=graphical)

    s.run(main)


@command("cells", "ce")
def cmd_cells(ctx: typer.Context) -> None:
    """List the cells of the cluster."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.app_examiner_commands().list_cells()

    s.run(main)


# =============================================================================
# Logs
# =============================================================================


@command("logs", "lo")
def cmd_logs(ctx: typer.Context, name: Annotated[str, typer.Argument(help="App name")]) -> None:
    """Stream the logs of an app."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.logs_commands().tail_logs(name)

    s.run(main)


@command("debug-logs")
def cmd_debug_logs(
    ctx: typer.Context,
    raw: Annotated[bool, typer.Option("--raw", "-r", help="Print message bodies only")] = False,
) -> None:
    """Stream the logs of the lattice components."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.logs_commands().tail_debug_logs(raw=raw)

    s.run(main)


# =============================================================================
# Tasks
# =============================================================================


@command("submit-task")
def cmd_submit_task(ctx: typer.Context, path: Annotated[str, typer.Argument(help="Task JSON file")]) -> None:
    """Submit a task from a JSON document."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.task_commands().submit_task(path)

    s.run(main)


@command("task")
def cmd_task(ctx: typer.Context, guid: Annotated[str, typer.Argument(help="Task guid")]) -> None:
    """Show the status of a task."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.task_commands().task(guid)

    s.run(main)


@command("cancel-task")
def cmd_cancel_task(ctx: typer.Context, guid: Annotated[str, typer.Argument(help="Task guid")]) -> None:
    """Cancel a task."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.task_commands().cancel_task(guid)

    s.run(main)


@command("delete-task")
def cmd_delete_task(ctx: typer.Context, guid: Annotated[str, typer.Argument(help="Task guid")]) -> None:
    """Delete a completed task."""
    s = _session(ctx)

    async def main() -> None:
        async with s.clients() as clients:
            await clients.task_commands().delete_task(guid)

    s.run(main)


# =============================================================================
# Self-test and help
# =============================================================================


@command("test")
def cmd_test(
    ctx: typer.Context,
    timeout: Duration = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Echo the output of each step")] = False,
) -> None:
    """Run a smoke test against the current target."""
    s = _session(ctx)
    runner = IntegrationTestRunner(s.ui, s.config.target, s.clock)

    async def main() -> None:
        try:
            await runner.run(_timeout(s, timeout), verbose=verbose)
        except ClusterTestError as e:
            s.ui.say_line(f"Test failed: {e}")
            s.exit_handler.exit(ExitCode.COMMAND_FAILED)

    s.run(main)


@command("help")
def cmd_help(ctx: typer.Context) -> None:
    """Show help."""
    Console().print(ctx.find_root().get_help(), highlight=False, markup=False)


def main() -> None:
    """Console script entry point."""
    group = typer.main.get_command(app)
    name = next((arg for arg in sys.argv[1:] if not arg.startswith("-")), None)
    if name is not None and name not in group.commands:
        Console(stderr=True).print(f"ltc: '{name}' is not a registered command", highlight=False, markup=False)
        sys.exit(int(ExitCode.ERROR))
    group(prog_name="ltc")


if __name__ == "__main__":
    main()
