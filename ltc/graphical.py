"""
Full-screen distribution dashboard for ``ltc visualize --graphical``.

Draws one bar per cell (running instances green, claimed yellow) with
:class:`rich.live.Live` on the alternate screen. Keys: ``+`` and ``-``
change the refresh rate by 100 ms, ``q`` quits.
"""

import asyncio
import logging
import os
import sys
import termios
import tty
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ltc.app_examiner import AppExaminer, CellInfo
from ltc.clock import Clock
from ltc.exit_handler import ExitHandler
from ltc.terminal import TerminalUI

logger = logging.getLogger(__name__)

RATE_DELTA = 0.1
BAR_CHAR = "█"


def cell_sort_key(cell: CellInfo) -> tuple[int, str]:
    """
    Order cells by the number in ``cell-N`` ids; other ids sort first.

    Examples
    --------
    >>> sorted(["cell-10", "cell-2", "other"], key=lambda c: cell_sort_key(CellInfo(cell_id=c)))
    ['other', 'cell-2', 'cell-10']
    """
    index = 0
    if cell.cell_id.startswith("cell-"):
        try:
            index = int(cell.cell_id.removeprefix("cell-"))
        except ValueError:
            index = 0
    return index, cell.cell_id


def distribution_chart(cells: list[CellInfo], rate: float) -> Group:
    """Render the dashboard for one refresh."""
    table = Table(title="[X-Axis: Cells; Y-Axis: Instances]", expand=True, show_lines=False)
    table.add_column("Cell", no_wrap=True)
    table.add_column("Instances", ratio=1)
    table.add_column("Running", justify="right", style="green")
    table.add_column("Claimed", justify="right", style="yellow")

    for cell in sorted(cells, key=cell_sort_key):
        if cell.missing:
            table.add_row(Text("Missing", style="red"), "", "", "")
            continue
        bar = Text(BAR_CHAR * cell.running_instances, style="green")
        bar.append(BAR_CHAR * cell.claimed_instances, style="yellow")
        table.add_row(cell.cell_id, bar, str(cell.running_instances), str(cell.claimed_instances))

    footer = Table.grid(expand=True)
    footer.add_column()
    footer.add_column(justify="right")
    footer.add_row("hit [+=inc; -=dec; q=quit]", f"rate:{rate:.1f}s")

    return Group(Text("Lattice Visualization", style="bold"), Panel(table), footer)


class GraphicalVisualizer:
    """
    Interactive per-cell bar chart.

    Parameters
    ----------
    app_examiner : AppExaminer
        Source of cell data
    ui : TerminalUI
        Terminal the dashboard is drawn on
    clock : Clock
        Source of refresh ticks
    exit_handler : ExitHandler
        Receives the terminal-mode restore callback
    key_stream : TextIO, optional
        Where key presses are read from (default: ``sys.stdin``)
    """

    def __init__(
        self,
        app_examiner: AppExaminer,
        ui: TerminalUI,
        clock: Clock,
        exit_handler: ExitHandler,
        key_stream: TextIO | None = None,
    ) -> None:
        self.app_examiner = app_examiner
        self.ui = ui
        self.clock = clock
        self.exit_handler = exit_handler
        self.key_stream = key_stream if key_stream is not None else sys.stdin

    async def print_distribution_chart(self, rate: float) -> None:
        """
        Run the dashboard until ``q`` is pressed.

        Raises
        ------
        LatticeError
            If the cells cannot be listed
        """
        if rate <= 0:
            rate = RATE_DELTA

        keys: asyncio.Queue[str] = asyncio.Queue()
        cells = await self.app_examiner.list_cells()

        with self._key_reader(keys), Live(
            distribution_chart(cells, rate),
            console=self.ui.console,
            screen=True,
            auto_refresh=False,
        ) as live:
            next_key = asyncio.create_task(keys.get())
            try:
                while True:
                    tick = asyncio.create_task(self.clock.sleep(rate))
                    done, _ = await asyncio.wait({next_key, tick}, return_when=asyncio.FIRST_COMPLETED)

                    if next_key in done:
                        tick.cancel()
                        key = next_key.result()
                        if key in ("q", "Q"):
                            return
                        if key in ("+", "="):
                            rate += RATE_DELTA
                        elif key in ("-", "_"):
                            rate = max(rate - RATE_DELTA, RATE_DELTA)
                        next_key = asyncio.create_task(keys.get())
                    else:
                        cells = await self.app_examiner.list_cells()

                    live.update(distribution_chart(cells, rate), refresh=True)
            finally:
                next_key.cancel()

    @contextmanager
    def _key_reader(self, keys: asyncio.Queue[str]) -> Iterator[None]:
        try:
            fd = self.key_stream.fileno()
            is_tty = self.key_stream.isatty()
        except (AttributeError, OSError, ValueError):
            is_tty = False

        if not is_tty:
            logger.debug("Key input is not a terminal, keys disabled")
            yield
            return

        original = termios.tcgetattr(fd)

        def restore_terminal() -> None:
            termios.tcsetattr(fd, termios.TCSADRAIN, original)

        self.exit_handler.on_exit(restore_terminal)
        tty.setcbreak(fd)

        loop = asyncio.get_running_loop()

        def on_readable() -> None:
            data = os.read(fd, 32)
            for char in data.decode(errors="ignore"):
                keys.put_nowait(char)

        loop.add_reader(fd, on_readable)
        try:
            yield
        finally:
            loop.remove_reader(fd)
            restore_terminal()
