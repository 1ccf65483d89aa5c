"""Formatting helpers shared by the examiner and task commands."""

from datetime import datetime, timedelta

from rich.text import Text

from ltc.app_examiner import AppInfo, InstanceInfo
from ltc.common.models import ActualLRPState

INSTANCE_STATE_WIDTH = len(ActualLRPState.UNCLAIMED.value)

_BYTE_UNITS = (
    ("T", 1024**4),
    ("G", 1024**3),
    ("M", 1024**2),
    ("K", 1024),
)


def color_instances(app: AppInfo) -> Text:
    """
    ``running/desired`` colored by how far the app is from its goal.

    Green when every desired instance runs (0/0 included), red when none
    runs, yellow in between.

    Examples
    --------
    >>> color_instances(AppInfo(process_guid="a", desired_instances=0)).style
    'green'
    """
    instances = f"{app.actual_running_instances}/{app.desired_instances}"
    if app.actual_running_instances == app.desired_instances:
        return Text(instances, style="green")
    if app.actual_running_instances == 0:
        return Text(instances, style="red")
    return Text(instances, style="yellow")


def color_instance_state(instance: InstanceInfo) -> Text:
    """Instance state in its status color."""
    state = instance.state
    if state == ActualLRPState.RUNNING:
        style = "green"
    elif state == ActualLRPState.CLAIMED:
        style = "yellow"
    elif state == ActualLRPState.UNCLAIMED:
        style = "red" if instance.placement_error else "cyan"
    elif state in (ActualLRPState.INVALID, ActualLRPState.CRASHED):
        style = "red"
    else:
        style = ""
    return Text(state, style=style)


def pad_and_color_instance_state(instance: InstanceInfo) -> Text:
    """Instance state padded to the widest state name, then colored."""
    text = color_instance_state(instance)
    text.pad_right(INSTANCE_STATE_WIDTH - len(instance.state))
    return text


def byte_size(num_bytes: int) -> str:
    """
    Short human readable size.

    Examples
    --------
    >>> byte_size(1024)
    '1K'
    >>> byte_size(1536 * 1024)
    '1.5M'
    >>> byte_size(0)
    '0'
    """
    for unit, size in _BYTE_UNITS:
        if num_bytes >= size:
            value = f"{num_bytes / size:.1f}".removesuffix(".0")
            return f"{value}{unit}"
    if num_bytes == 0:
        return "0"
    return f"{num_bytes}B"


def format_duration(delta: timedelta) -> str:
    """
    Duration as hours, minutes and whole seconds.

    Examples
    --------
    >>> format_duration(timedelta(seconds=45))
    '45s'
    >>> format_duration(timedelta(minutes=2, seconds=3))
    '2m3s'
    >>> format_duration(timedelta(hours=1, seconds=5))
    '1h0m5s'
    """
    seconds = max(int(delta.total_seconds()), 0)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"


def uptime(since_ns: int, now: datetime) -> str:
    """Time elapsed since a nanosecond epoch timestamp."""
    started = datetime.fromtimestamp(since_ns / 1e9, tz=now.tzinfo)
    return format_duration(now - started)
