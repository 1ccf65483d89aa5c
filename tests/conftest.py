"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import UTC, datetime, timedelta
from io import StringIO
from unittest.mock import AsyncMock, MagicMock

import pytest
from rich.console import Console

from ltc.app_examiner import AppExaminer
from ltc.config import Config, MemPersister
from ltc.exit_handler import ExitHandler
from ltc.receptor_client import ReceptorClient
from ltc.terminal import TerminalUI


class FakeClock:
    """Clock whose sleeps advance time instantly."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)
        await asyncio.sleep(0)


def make_ui(terminal: bool = False, input_text: str = "") -> TerminalUI:
    console = Console(
        file=StringIO(),
        force_terminal=terminal,
        color_system=None,
        width=200,
        highlight=False,
        emoji=False,
    )
    return TerminalUI(console=console, input_stream=StringIO(input_text))


def output_of(ui: TerminalUI) -> str:
    """Everything written to a :func:`make_ui` terminal so far."""
    return ui.console.file.getvalue()


@pytest.fixture
def clock():
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def exit_handler():
    """Create a real exit handler."""
    return ExitHandler()


@pytest.fixture
def ui():
    """Create a terminal UI writing to a string buffer."""
    return make_ui()


@pytest.fixture
def terminal_ui():
    """Create a terminal UI that emits cursor control codes."""
    return make_ui(terminal=True)


@pytest.fixture
def config():
    """Create a config targeting a test cluster."""
    config = Config(MemPersister())
    config.set_target("192.168.11.11.xip.io")
    return config


@pytest.fixture
def mock_receptor_client():
    """Create a mock receptor client with empty listings."""
    client = MagicMock(spec=ReceptorClient)
    client.desired_lrps = AsyncMock(return_value=[])
    client.get_desired_lrp = AsyncMock()
    client.create_desired_lrp = AsyncMock()
    client.update_desired_lrp = AsyncMock()
    client.delete_desired_lrp = AsyncMock()
    client.actual_lrps = AsyncMock(return_value=[])
    client.actual_lrps_by_process_guid = AsyncMock(return_value=[])
    client.cells = AsyncMock(return_value=[])
    client.tasks = AsyncMock(return_value=[])
    client.get_task = AsyncMock()
    client.create_task = AsyncMock()
    client.delete_task = AsyncMock()
    client.cancel_task = AsyncMock()
    client.upsert_domain = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_app_examiner():
    """Create a mock app examiner."""
    examiner = MagicMock(spec=AppExaminer)
    examiner.list_apps = AsyncMock(return_value=[])
    examiner.list_cells = AsyncMock(return_value=[])
    examiner.app_status = AsyncMock()
    examiner.app_exists = AsyncMock(return_value=True)
    examiner.running_app_instances_info = AsyncMock(return_value=(0, False))
    return examiner


@pytest.fixture
def mock_outputter():
    """Create a mock tailed logs outputter."""
    outputter = MagicMock()
    outputter.output_tailed_logs = AsyncMock()
    outputter.output_debug_logs = AsyncMock()
    outputter.stop_outputting = AsyncMock()
    return outputter
