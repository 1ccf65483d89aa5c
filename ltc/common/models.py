"""
Pydantic wire models for the receptor control-plane API.

This module defines the documents exchanged with the receptor:
- Desired LRP create/update requests and responses
- Actual LRP (instance) responses
- Cell presence responses
- Task create requests and responses
- Receptor error bodies

Field names follow the receptor's snake_case JSON. Response models ignore
unknown keys so newer receptors keep working; create requests submitted
from user JSON keep unknown keys so they round-trip untouched.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

LATTICE_DOMAIN = "lattice"
RESERVED_DEBUG_GUID = "lattice-debug"
RESERVED_DEBUG_GUID_MESSAGE = (
    f"{RESERVED_DEBUG_GUID} is a reserved app name. "
    "It is used internally to stream debug logs for lattice components."
)


# =============================================================================
# Shared pieces
# =============================================================================


class EnvironmentVariable(BaseModel):
    """A single ``name=value`` pair passed into the container."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str = ""


class PortMapping(BaseModel):
    """
    Host to container port mapping of a running instance.

    Parameters
    ----------
    container_port : int
        Port inside the container
    host_port : int
        Port on the cell, 0 until the instance is placed
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    container_port: int = Field(..., ge=0, le=65535)
    host_port: int = Field(0, ge=0, le=65535)


class PortConfig(BaseModel):
    """
    Ports an app exposes and the one its health check watches.

    Examples
    --------
    >>> PortConfig(monitored=80, exposed=[80, 443]).is_empty
    False
    >>> PortConfig().is_empty
    True
    """

    monitored: int = Field(0, ge=0, le=65535)
    exposed: list[int] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.exposed


class DownloadAction(BaseModel):
    """Download-and-extract step run before the main action."""

    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(..., alias="from")
    to: str
    cache_key: str = ""

    def to_wire(self) -> dict[str, Any]:
        """Wrap the action in its receptor envelope."""
        return {"download": self.model_dump(by_alias=True)}


class RunAction(BaseModel):
    """Process run inside the container."""

    path: str
    args: list[str] = Field(default_factory=list)
    dir: str = ""
    privileged: bool = False
    log_source: str = ""

    def to_wire(self) -> dict[str, Any]:
        """Wrap the action in its receptor envelope."""
        return {"run": self.model_dump()}


# =============================================================================
# Desired LRPs
# =============================================================================


class DesiredLRPCreateRequest(BaseModel):
    """
    Desired state document submitted to create a long-running process.

    Examples
    --------
    >>> request = DesiredLRPCreateRequest(process_guid="myapp", rootfs="docker:///my/image#latest")
    >>> request.domain
    'lattice'
    >>> request.instances
    1
    """

    model_config = ConfigDict(extra="allow")

    process_guid: str
    domain: str = LATTICE_DOMAIN
    rootfs: str = ""
    instances: int = Field(1, ge=0)
    env: list[EnvironmentVariable] = Field(default_factory=list)
    setup: dict[str, Any] | None = None
    action: dict[str, Any] | None = None
    monitor: dict[str, Any] | None = None
    start_timeout: int = Field(0, ge=0)
    disk_mb: int = Field(0, ge=0)
    memory_mb: int = Field(0, ge=0)
    cpu_weight: int = Field(0, ge=0, le=100)
    privileged: bool = False
    ports: list[int] = Field(default_factory=list)
    routes: dict[str, Any] | None = None
    log_guid: str = ""
    log_source: str = ""
    metrics_guid: str = ""
    annotation: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the receptor, dropping unset optional sections."""
        return self.model_dump(exclude_none=True)


class DesiredLRPUpdateRequest(BaseModel):
    """Partial update of a desired LRP: only the fields that are set are sent."""

    instances: int | None = Field(None, ge=0)
    routes: dict[str, Any] | None = None
    annotation: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize only the fields being changed."""
        return self.model_dump(exclude_none=True)


class DesiredLRPResponse(BaseModel):
    """Desired LRP as reported by the receptor."""

    model_config = ConfigDict(extra="ignore")

    process_guid: str
    domain: str = ""
    rootfs: str = ""
    instances: int = 0
    env: list[EnvironmentVariable] | None = None
    setup: dict[str, Any] | None = None
    action: dict[str, Any] | None = None
    monitor: dict[str, Any] | None = None
    start_timeout: int = 0
    disk_mb: int = 0
    memory_mb: int = 0
    cpu_weight: int = 0
    privileged: bool = False
    ports: list[int] | None = None
    routes: dict[str, Any] | None = None
    log_guid: str = ""
    log_source: str = ""
    metrics_guid: str = ""
    annotation: str = ""


# =============================================================================
# Actual LRPs and cells
# =============================================================================


class ActualLRPState(str, Enum):
    """Lifecycle state of one workload instance."""

    INVALID = "INVALID"
    UNCLAIMED = "UNCLAIMED"
    CLAIMED = "CLAIMED"
    RUNNING = "RUNNING"
    CRASHED = "CRASHED"


class ActualLRPResponse(BaseModel):
    """
    Observed state of one instance of a workload.

    ``address`` and ``ports`` are only meaningful while the instance is
    CLAIMED or RUNNING; ``placement_error`` only while it is UNCLAIMED.
    """

    model_config = ConfigDict(extra="ignore")

    process_guid: str
    instance_guid: str = ""
    cell_id: str = ""
    domain: str = ""
    index: int = Field(0, ge=0)
    address: str = ""
    ports: list[PortMapping] | None = None
    state: ActualLRPState = ActualLRPState.INVALID
    crash_count: int = Field(0, ge=0)
    crash_reason: str = ""
    placement_error: str = ""
    since: int = 0
    evacuating: bool = False


class CellCapacity(BaseModel):
    """Resources a cell advertises."""

    model_config = ConfigDict(extra="ignore")

    memory_mb: int = 0
    disk_mb: int = 0
    containers: int = 0


class CellResponse(BaseModel):
    """A worker host registered with the cluster."""

    model_config = ConfigDict(extra="ignore")

    cell_id: str
    zone: str = ""
    capacity: CellCapacity = Field(default_factory=CellCapacity)


# =============================================================================
# Tasks
# =============================================================================


class TaskState(str, Enum):
    """Lifecycle state of a one-shot task."""

    INVALID = "INVALID"
    PENDING = "PENDING"
    CLAIMED = "CLAIMED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    RESOLVING = "RESOLVING"


class TaskCreateRequest(BaseModel):
    """
    Task document submitted by ``ltc submit-task``.

    Only the guid is interpreted client-side; everything else is passed
    through to the receptor as given.
    """

    model_config = ConfigDict(extra="allow")

    task_guid: str
    domain: str = LATTICE_DOMAIN

    def to_wire(self) -> dict[str, Any]:
        """Serialize including every pass-through key."""
        return self.model_dump()


class TaskResponse(BaseModel):
    """Task as reported by the receptor."""

    model_config = ConfigDict(extra="ignore")

    task_guid: str
    domain: str = ""
    cell_id: str = ""
    state: TaskState = TaskState.INVALID
    failed: bool = False
    failure_reason: str = ""
    result: str = ""
    created_at: int = 0


# =============================================================================
# Errors
# =============================================================================


class ReceptorErrorBody(BaseModel):
    """JSON error body returned by the receptor on non-2xx responses."""

    model_config = ConfigDict(extra="ignore")

    name: str = "UnknownError"
    message: str = ""
