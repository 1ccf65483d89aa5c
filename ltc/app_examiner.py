"""
Read-only views over the cluster: apps, their instances, and cells.

Desired and actual LRPs are merged into one :class:`AppInfo` per process
guid. Instances are always sorted by index and apps and cells by name.
"""

import logging
from typing import Protocol

from pydantic import BaseModel, Field

from ltc.common.exceptions import AppNotFoundError, LatticeError
from ltc.common.models import (
    ActualLRPResponse,
    ActualLRPState,
    DesiredLRPResponse,
    EnvironmentVariable,
    PortMapping,
)
from ltc.logs.envelope import ContainerMetric
from ltc.receptor_client import ReceptorClient
from ltc.route_helpers import Routes

logger = logging.getLogger(__name__)

APP_NOT_FOUND_ERROR_MESSAGE = "App not found."


class MetricsSource(Protocol):
    async def container_metrics(self, app_guid: str) -> list[ContainerMetric]: ...


class InstanceMetrics(BaseModel):
    cpu_percentage: float = 0.0
    memory_bytes: int = 0
    disk_bytes: int = 0


class InstanceInfo(BaseModel):
    """One actual instance of an app."""

    instance_guid: str = ""
    cell_id: str = ""
    index: int = 0
    ip: str = ""
    ports: list[PortMapping] = Field(default_factory=list)
    state: str = ActualLRPState.INVALID.value
    since: int = 0
    placement_error: str = ""
    crash_count: int = 0
    metrics: InstanceMetrics | None = None

    @property
    def has_metrics(self) -> bool:
        return self.metrics is not None


class AppInfo(BaseModel):
    """Desired state of an app merged with its actual instances."""

    process_guid: str
    desired_instances: int = 0
    actual_running_instances: int = 0
    environment_variables: list[EnvironmentVariable] = Field(default_factory=list)
    start_timeout: int = 0
    disk_mb: int = 0
    memory_mb: int = 0
    cpu_weight: int = 0
    ports: list[int] = Field(default_factory=list)
    routes: Routes = Field(default_factory=Routes)
    log_guid: str = ""
    log_source: str = ""
    annotation: str = ""
    actual_instances: list[InstanceInfo] = Field(default_factory=list)


class CellInfo(BaseModel):
    """A cell with the instances placed on it."""

    cell_id: str
    running_instances: int = 0
    claimed_instances: int = 0
    missing: bool = False
    zone: str = ""
    memory_mb: int = 0
    disk_mb: int = 0
    containers: int = 0


class AppExaminer:
    """
    Queries behind ``list``, ``status``, ``cells`` and ``visualize``.

    Parameters
    ----------
    receptor_client : ReceptorClient
        Control-plane client
    metrics_source : MetricsSource, optional
        Provider of per-instance container metrics
    """

    def __init__(self, receptor_client: ReceptorClient, metrics_source: MetricsSource | None = None):
        self.receptor_client = receptor_client
        self.metrics_source = metrics_source

    async def list_apps(self) -> list[AppInfo]:
        """Every app that is desired or has actual instances, sorted by guid."""
        desired_lrps = await self.receptor_client.desired_lrps()
        actual_lrps = await self.receptor_client.actual_lrps()
        apps = merge_desired_actual_lrps(desired_lrps, actual_lrps)
        return [apps[guid] for guid in sorted(apps)]

    async def list_cells(self) -> list[CellInfo]:
        """
        Cells with running and claimed counts, sorted by cell id.

        Cells that host instances but did not report presence are marked
        ``missing``. Unclaimed instances are not placed on any cell.
        """
        cells: dict[str, CellInfo] = {}
        for cell in await self.receptor_client.cells():
            cells[cell.cell_id] = CellInfo(
                cell_id=cell.cell_id,
                zone=cell.zone,
                memory_mb=cell.capacity.memory_mb,
                disk_mb=cell.capacity.disk_mb,
                containers=cell.capacity.containers,
            )

        for actual in await self.receptor_client.actual_lrps():
            if actual.state == ActualLRPState.UNCLAIMED:
                continue

            cell = cells.get(actual.cell_id)
            if cell is None:
                cell = cells[actual.cell_id] = CellInfo(cell_id=actual.cell_id, missing=True)

            if actual.state == ActualLRPState.RUNNING:
                cell.running_instances += 1
            elif actual.state == ActualLRPState.CLAIMED:
                cell.claimed_instances += 1

        return [cells[cell_id] for cell_id in sorted(cells)]

    async def app_status(self, app_name: str) -> AppInfo:
        """
        Detailed view of one app.

        A missing desired LRP is tolerated so that instances of an app being
        removed still show up. Metrics are attached when available; failing
        to fetch them is not an error.

        Raises
        ------
        AppNotFoundError
            If the app is neither desired nor has instances
        """
        try:
            desired = await self.receptor_client.get_desired_lrp(app_name)
        except AppNotFoundError:
            desired = None

        actual_lrps = await self.receptor_client.actual_lrps_by_process_guid(app_name)

        apps = merge_desired_actual_lrps([desired] if desired else [], actual_lrps)
        app = apps.get(app_name)
        if app is None:
            raise AppNotFoundError(APP_NOT_FOUND_ERROR_MESSAGE, details={"app": app_name})

        if self.metrics_source is None:
            return app

        try:
            metrics = await self.metrics_source.container_metrics(app_name)
        except LatticeError as e:
            logger.info(f"Container metrics unavailable for {app_name}: {e}")
            return app

        by_index = {instance.index: instance for instance in app.actual_instances}
        for metric in metrics:
            instance = by_index.get(metric.instance_index)
            if instance is None:
                continue
            instance.metrics = InstanceMetrics(
                cpu_percentage=metric.cpu_percentage,
                memory_bytes=metric.memory_bytes,
                disk_bytes=metric.disk_bytes,
            )
        return app

    async def app_exists(self, name: str) -> bool:
        """Whether any actual instance of ``name`` exists."""
        actual_lrps = await self.receptor_client.actual_lrps()
        return any(actual.process_guid == name for actual in actual_lrps)

    async def running_app_instances_info(self, name: str) -> tuple[int, bool]:
        """
        Count running instances of ``name``.

        Returns
        -------
        tuple[int, bool]
            Number of RUNNING instances and whether any instance reports a
            placement error
        """
        running = 0
        placement_error = False
        for instance in await self.receptor_client.actual_lrps_by_process_guid(name):
            if instance.state == ActualLRPState.RUNNING:
                running += 1
            if instance.placement_error:
                placement_error = True
        return running, placement_error


def merge_desired_actual_lrps(
    desired_lrps: list[DesiredLRPResponse], actual_lrps: list[ActualLRPResponse]
) -> dict[str, AppInfo]:
    """Build one :class:`AppInfo` per process guid, instances sorted by index."""
    apps: dict[str, AppInfo] = {}

    for desired in desired_lrps:
        apps[desired.process_guid] = AppInfo(
            process_guid=desired.process_guid,
            desired_instances=desired.instances,
            environment_variables=list(desired.env or []),
            start_timeout=desired.start_timeout,
            disk_mb=desired.disk_mb,
            memory_mb=desired.memory_mb,
            cpu_weight=desired.cpu_weight,
            ports=list(desired.ports or []),
            routes=Routes.from_routing_info(desired.routes),
            log_guid=desired.log_guid,
            log_source=desired.log_source,
            annotation=desired.annotation,
        )

    for actual in actual_lrps:
        app = apps.get(actual.process_guid)
        if app is None:
            app = apps[actual.process_guid] = AppInfo(process_guid=actual.process_guid)

        if actual.state == ActualLRPState.RUNNING:
            app.actual_running_instances += 1

        app.actual_instances.append(
            InstanceInfo(
                instance_guid=actual.instance_guid,
                cell_id=actual.cell_id,
                index=actual.index,
                ip=actual.address,
                ports=list(actual.ports or []),
                state=actual.state.value,
                since=actual.since,
                placement_error=actual.placement_error,
                crash_count=actual.crash_count,
            )
        )

    for app in apps.values():
        app.actual_instances.sort(key=lambda instance: instance.index)

    return apps
