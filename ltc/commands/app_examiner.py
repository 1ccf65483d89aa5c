"""``list``, ``status``, ``cells`` and ``visualize``."""

import logging
from datetime import datetime

from rich.console import RenderableType
from rich.table import Table
from rich.text import Text

from ltc.app_examiner import AppExaminer, AppInfo, InstanceInfo
from ltc.clock import Clock
from ltc.common.exceptions import LatticeError
from ltc.common.models import ActualLRPState
from ltc.exit_handler import ExitCode, ExitHandler
from ltc.graphical import GraphicalVisualizer
from ltc.presentation import (
    byte_size,
    color_instance_state,
    color_instances,
    pad_and_color_instance_state,
    uptime,
)
from ltc.refresh_loop import RefreshLoop
from ltc.task_examiner import TaskExaminer
from ltc.terminal import TerminalUI, bold, cyan, green, red, yellow

logger = logging.getLogger(__name__)

INDENT_HEADING = " " * 6
RULE_WIDTH = 90
INSTANCE_DOT = "•"


def _rule(pattern: str) -> Text:
    return Text(pattern * RULE_WIDTH)


def _table(*headers: str) -> Table:
    table = Table(box=None, show_edge=False, pad_edge=False, header_style="bold", padding=(0, 2, 0, 0))
    for header in headers:
        table.add_column(header, no_wrap=True)
    return table


def _fields() -> Table:
    grid = Table.grid(padding=(0, 2, 0, 0))
    grid.add_column(no_wrap=True)
    grid.add_column()
    return grid


def _has_location(instance: InstanceInfo) -> bool:
    return not instance.placement_error and instance.state != ActualLRPState.CRASHED


class AppExaminerCommands:
    """
    Read-only app and cell commands.

    Parameters
    ----------
    ui : TerminalUI
        Output terminal
    app_examiner : AppExaminer
        App and cell queries
    task_examiner : TaskExaminer
        Task queries for the task table of ``list``
    clock : Clock
        Uptime reference and refresh ticks
    exit_handler : ExitHandler
        Exit path and cursor restore
    domain : str
        System domain shown in TCP routes
    graphical_visualizer : GraphicalVisualizer, optional
        Dashboard used by ``visualize --graphical``
    """

    def __init__(
        self,
        ui: TerminalUI,
        app_examiner: AppExaminer,
        task_examiner: TaskExaminer,
        clock: Clock,
        exit_handler: ExitHandler,
        domain: str,
        graphical_visualizer: GraphicalVisualizer | None = None,
    ) -> None:
        self.ui = ui
        self.app_examiner = app_examiner
        self.task_examiner = task_examiner
        self.clock = clock
        self.exit_handler = exit_handler
        self.domain = domain
        self.graphical_visualizer = graphical_visualizer

    # -------------------------------------------------------------------------
    # list
    # -------------------------------------------------------------------------

    async def list_apps(self) -> None:
        """Print the app table followed by the task table."""
        try:
            apps = await self.app_examiner.list_apps()
        except LatticeError as e:
            self.ui.say_line(f"Error listing apps: {e}")
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        self.ui.say_line("-" * 30 + "= Apps =" + "-" * 31)
        if apps:
            table = _table("App Name", "Instances", "DiskMB", "MemoryMB", "Route")
            for app in apps:
                table.add_row(
                    bold(app.process_guid),
                    color_instances(app),
                    str(app.disk_mb),
                    str(app.memory_mb),
                    cyan(self._routes_summary(app)),
                )
            self.ui.print(table)
        else:
            self.ui.say_line("No apps to display.")

        try:
            tasks = await self.task_examiner.list_tasks()
        except LatticeError as e:
            self.ui.say_line(f"Error listing tasks: {e}")
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        self.ui.say_new_line()
        self.ui.say_line("-" * 30 + "= Tasks =" + "-" * 30)
        if not tasks:
            self.ui.say_line("No tasks to display.")
            return

        table = _table("Task Name", "Cell ID", "Status", "Result", "Failure Reason")
        for task in tasks:
            table.add_row(
                bold(task.task_guid),
                task.cell_id or "N/A",
                task.state.value,
                task.result or "N/A",
                task.failure_reason or "N/A",
            )
        self.ui.print(table)

    def _routes_summary(self, app: AppInfo) -> str:
        ports = set(app.ports)
        routes = []
        for port, hostnames in app.routes.hostnames_by_port().items():
            if port in ports:
                routes.extend(f"{hostname} => {port}" for hostname in hostnames)
        for tcp_route in app.routes.tcp_routes or []:
            if tcp_route.container_port in ports:
                routes.append(f"{self.domain}:{tcp_route.external_port} => {tcp_route.container_port}")
        return ", ".join(routes)

    # -------------------------------------------------------------------------
    # cells
    # -------------------------------------------------------------------------

    async def list_cells(self) -> None:
        try:
            cells = await self.app_examiner.list_cells()
        except LatticeError as e:
            self.ui.say_line(str(e))
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        table = _table("Cells", "Zone", "Memory", "Disk", "Apps")
        for cell in cells:
            cell_id = Text(cell.cell_id)
            if cell.missing:
                cell_id.append("[MISSING]", style="red")
            table.add_row(
                cell_id,
                cell.zone,
                f"{cell.memory_mb}M",
                f"{cell.disk_mb}M",
                f"{cell.running_instances}/{cell.claimed_instances}",
            )
        self.ui.print(table)

    # -------------------------------------------------------------------------
    # status
    # -------------------------------------------------------------------------

    async def app_status(self, app_name: str, summary: bool = False, rate: float | None = None) -> None:
        """
        Print one app's details and its instances.

        With ``rate`` the view is redrawn in place, always in summary form.
        """
        if not app_name:
            self.ui.say_incorrect_usage("App Name required")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            app = await self.app_examiner.app_status(app_name)
        except LatticeError as e:
            self.ui.say_line(str(e))
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        if not rate:
            for renderable in self._status_frame(app, summary):
                self.ui.print(renderable)
            return

        loop = RefreshLoop(self.ui, self.clock, self.exit_handler)
        first = True

        async def render() -> int:
            nonlocal first
            if first:
                first = False
                return self.ui.render_frame(*self._status_frame(app, True))
            try:
                current = await self.app_examiner.app_status(app_name)
            except LatticeError as e:
                loop.close()
                return self.ui.render_frame(Text(f"Error getting status: {e}"))
            return self.ui.render_frame(*self._status_frame(current, True))

        await loop.run(render, rate)

    def _status_frame(self, app: AppInfo, summary: bool) -> list[RenderableType]:
        frame = self._app_info(app)
        if summary:
            frame.extend(self._instance_summary(app.actual_instances))
        else:
            frame.extend(self._instance_details(app.actual_instances))
        return frame

    def _app_info(self, app: AppInfo) -> list[RenderableType]:
        fields = _fields()
        fields.add_row("Instances", color_instances(app))
        fields.add_row("Start Timeout", str(app.start_timeout))
        fields.add_row("DiskMB", str(app.disk_mb))
        fields.add_row("MemoryMB", str(app.memory_mb))
        fields.add_row("CPUWeight", str(app.cpu_weight))
        fields.add_row("Ports", ",".join(str(port) for port in app.ports))

        label = "Routes"
        for port, route in self._route_lines(app):
            fields.add_row(label, cyan(f"{route} => {port}"))
            label = ""

        if app.annotation:
            fields.add_row("Annotation", app.annotation)

        environment = Text("Environment\n\n")
        for env in app.environment_variables:
            environment.append(f'{env.name}="{env.value}" \n')

        return [
            _rule("="),
            Text(INDENT_HEADING) + bold(app.process_guid),
            _rule("-"),
            fields,
            _rule("-"),
            environment,
        ]

    def _route_lines(self, app: AppInfo) -> list[tuple[int, str]]:
        ports = set(app.ports)
        hostnames = app.routes.hostnames_by_port()
        external: dict[int, list[int]] = {}
        for tcp_route in app.routes.tcp_routes or []:
            if tcp_route.container_port in ports:
                external.setdefault(tcp_route.container_port, []).append(tcp_route.external_port)

        lines = []
        for port in sorted(ports):
            lines.extend((port, hostname) for hostname in hostnames.get(port, []))
            lines.extend((port, f"{self.domain}:{external_port}") for external_port in external.get(port, []))
        return lines

    def _instance_summary(self, instances: list[InstanceInfo]) -> list[RenderableType]:
        now = self.clock.now()
        table = _table("Instance", "State", "Crashes", "CPU", "Memory", "Uptime")
        for instance in instances:
            cpu, memory = "N/A", "N/A"
            if instance.metrics is not None:
                cpu = f"{instance.metrics.cpu_percentage:.2f}%"
                memory = byte_size(instance.metrics.memory_bytes)
            table.add_row(
                str(instance.index),
                pad_and_color_instance_state(instance),
                str(instance.crash_count),
                cpu,
                memory,
                uptime(instance.since, now) if _has_location(instance) else "N/A",
            )
        return [_rule("="), table]

    def _instance_details(self, instances: list[InstanceInfo]) -> list[RenderableType]:
        now = self.clock.now()
        frame: list[RenderableType] = [_rule("=")]
        for instance in instances:
            heading = Text(f"{INDENT_HEADING}Instance {instance.index}  [")
            heading.append_text(color_instance_state(instance))
            heading.append("]")
            frame.extend([heading, _rule("-")])

            fields = _fields()
            if _has_location(instance):
                mappings = ";".join(f"{port.host_port}:{port.container_port}" for port in instance.ports)
                fields.add_row("InstanceGuid", instance.instance_guid)
                fields.add_row("Cell ID", instance.cell_id)
                fields.add_row("Ip", instance.ip)
                fields.add_row("Port Mapping", mappings)
                fields.add_row("Uptime", uptime(instance.since, now))
            elif instance.state != ActualLRPState.CRASHED:
                fields.add_row("Placement Error", instance.placement_error)

            fields.add_row("Crash Count", str(instance.crash_count))
            if instance.metrics is not None:
                fields.add_row("CPU", f"{instance.metrics.cpu_percentage:.2f}%")
                fields.add_row("Memory", byte_size(instance.metrics.memory_bytes))

            frame.extend([fields, _rule("-")])
        return frame

    # -------------------------------------------------------------------------
    # visualize
    # -------------------------------------------------------------------------

    async def visualize(self, rate: float | None = None, graphical: bool = False) -> None:
        """Show instance distribution over cells, live when ``rate`` is set."""
        if graphical:
            visualizer = self.graphical_visualizer or GraphicalVisualizer(
                self.app_examiner, self.ui, self.clock, self.exit_handler
            )
            try:
                await visualizer.print_distribution_chart(rate or 0)
            except LatticeError as e:
                self.ui.say_line(f"Error Visualization: {e}")
                self.exit_handler.exit(ExitCode.COMMAND_FAILED)
            return

        self.ui.say_line(bold("Distribution"))
        loop = RefreshLoop(self.ui, self.clock, self.exit_handler)
        await loop.run(self._print_distribution, rate)

    async def _print_distribution(self) -> int:
        try:
            cells = await self.app_examiner.list_cells()
        except LatticeError as e:
            logger.debug(f"Listing cells failed: {e!r}")
            return self.ui.render_frame(Text(f"Error visualizing: {e}"))

        lines = []
        for cell in cells:
            line = Text(cell.cell_id)
            if cell.missing:
                line.append_text(red("[MISSING]"))
            line.append(": ")
            if cell.running_instances == 0 and cell.claimed_instances == 0 and not cell.missing:
                line.append_text(red("empty"))
            else:
                line.append_text(green(INSTANCE_DOT * cell.running_instances))
                line.append_text(yellow(INSTANCE_DOT * cell.claimed_instances))
            lines.append(line)
        return self.ui.render_frame(*lines)
