"""
In-place redraw of live terminal views.

``visualize --rate`` and ``status --rate`` draw a frame, then on every
tick move the cursor back up over it and draw the next one. The cursor is
hidden while the loop runs and shown again through the exit handler, so
Ctrl-C leaves the terminal usable.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ltc.clock import Clock
from ltc.exit_handler import ExitHandler
from ltc.terminal import TerminalUI

logger = logging.getLogger(__name__)

Render = Callable[[], Awaitable[int]]


class RefreshLoop:
    """
    Redraw a frame every ``rate`` seconds until closed.

    Parameters
    ----------
    ui : TerminalUI
        Terminal the frames are drawn on
    clock : Clock
        Source of ticks
    exit_handler : ExitHandler
        Receives the close and cursor-restore callback

    Examples
    --------
    >>> async def example(loop, render):
    ...     await loop.run(render, rate=2.0)
    """

    def __init__(self, ui: TerminalUI, clock: Clock, exit_handler: ExitHandler) -> None:
        self.ui = ui
        self.clock = clock
        self.exit_handler = exit_handler
        self._closed = asyncio.Event()

    def close(self) -> None:
        """End the loop after the frame being drawn, if any."""
        self._closed.set()

    async def run(self, render: Render, rate: float | None) -> None:
        """
        Draw the first frame and, with a positive ``rate``, keep redrawing.

        Parameters
        ----------
        render : Callable[[], Awaitable[int]]
            Draws one frame and returns how many lines it wrote
        rate : float, optional
            Seconds between frames; ``None`` or 0 draws a single frame
        """
        lines = await render()
        if not rate or rate <= 0:
            return

        self.ui.hide_cursor()

        def restore() -> None:
            self.close()
            self.ui.show_cursor()

        self.exit_handler.on_exit(restore)

        closed = asyncio.create_task(self._closed.wait())
        try:
            while not self._closed.is_set():
                tick = asyncio.create_task(self.clock.sleep(rate))
                done, _ = await asyncio.wait({tick, closed}, return_when=asyncio.FIRST_COMPLETED)
                if closed in done:
                    tick.cancel()
                    await asyncio.gather(tick, return_exceptions=True)
                    return

                self.ui.cursor_up(lines)
                lines = await render()
        finally:
            closed.cancel()
            await asyncio.gather(closed, return_exceptions=True)
            self.ui.show_cursor()
            logger.debug("Refresh loop stopped")
