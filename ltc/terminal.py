"""
Terminal front end built on rich.

:class:`TerminalUI` wraps a :class:`rich.console.Console` and offers the
primitives the commands need: line output, colored fragments, tables,
prompts (with and without echo) and the cursor moves used to redraw live
views in place.

Plain ``str`` output is printed literally (no markup, no highlighting), so
user-supplied names never get interpreted as rich markup. Colored output
is built from :class:`rich.text.Text` fragments via the helpers below.
"""

import asyncio
import logging
import sys
import termios
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

from rich.console import Console, RenderableType
from rich.control import Control
from rich.segment import ControlType
from rich.text import Text

from ltc.exit_handler import ExitHandler

logger = logging.getLogger(__name__)

CLEAR_TO_END_OF_DISPLAY = "\x1b[J"


# =============================================================================
# Colors
# =============================================================================


def colored(text: str, style: str) -> Text:
    """Return ``text`` rendered in ``style``."""
    return Text(text, style=style)


def red(text: str) -> Text:
    return colored(text, "red")


def green(text: str) -> Text:
    return colored(text, "green")


def yellow(text: str) -> Text:
    return colored(text, "yellow")


def cyan(text: str) -> Text:
    return colored(text, "cyan")


def gray(text: str) -> Text:
    return colored(text, "bright_black")


def bold(text: str) -> Text:
    return colored(text, "bold")


# =============================================================================
# Terminal UI
# =============================================================================


class TerminalUI:
    """
    Line-oriented terminal output plus prompts and cursor control.

    Parameters
    ----------
    console : Console, optional
        Console to write to (default: stdout console without highlighting)
    input_stream : TextIO, optional
        Stream prompts read from (default: ``sys.stdin``)
    exit_handler : ExitHandler, optional
        Receives the echo-restore callback before a password prompt

    Examples
    --------
    >>> from io import StringIO
    >>> ui = TerminalUI(console=Console(file=StringIO()))
    >>> ui.say_line("Api Location Set")
    """

    def __init__(
        self,
        console: Console | None = None,
        input_stream: TextIO | None = None,
        exit_handler: ExitHandler | None = None,
    ) -> None:
        self.console = console or Console(highlight=False, emoji=False, soft_wrap=True)
        self.input_stream = input_stream if input_stream is not None else sys.stdin
        self.exit_handler = exit_handler

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def say(self, *fragments: str | Text) -> None:
        """Write fragments without a trailing newline."""
        text = Text()
        for fragment in fragments:
            text.append(fragment)
        self.console.print(text, end="", soft_wrap=True, highlight=False)

    def say_line(self, *fragments: str | Text) -> None:
        """Write fragments followed by a newline."""
        self.say(*fragments, "\n")

    def say_new_line(self) -> None:
        self.say("\n")

    def say_incorrect_usage(self, message: str) -> None:
        """Report a usage error in the standard format."""
        if message:
            self.say_line(f"Incorrect Usage: {message}")
        else:
            self.say_line("Incorrect Usage")

    def dot(self) -> None:
        """Progress marker printed while polling."""
        self.say(".")

    def print(self, renderable: RenderableType) -> None:
        """Print a rich renderable such as a :class:`rich.table.Table`."""
        self.console.print(renderable)

    def render_frame(self, *renderables: RenderableType) -> int:
        """
        Draw one frame of a live view.

        Every line is followed by clear-to-end-of-line and the frame by
        clear-to-end-of-display, so a shorter frame drawn over a longer
        one leaves no residue.

        Returns
        -------
        int
            Number of lines written, for the next cursor-up
        """
        with self.console.capture() as capture:
            for renderable in renderables:
                self.console.print(renderable, soft_wrap=True, highlight=False)
        lines = capture.get().splitlines()

        eol = str(Control((ControlType.ERASE_IN_LINE, 0))) if self.console.is_terminal else ""
        out = self.console.file
        for line in lines:
            out.write(f"{line}{eol}\n")
        out.flush()
        self.clear_to_end_of_display()
        return len(lines)

    # -------------------------------------------------------------------------
    # Cursor
    # -------------------------------------------------------------------------

    def _control(self, code: str) -> None:
        if not self.console.is_terminal:
            return
        self.console.file.write(code)
        self.console.file.flush()

    def cursor_up(self, lines: int) -> None:
        if lines > 0:
            self._control(str(Control.move(0, -lines)))

    def clear_to_end_of_line(self) -> None:
        self._control(str(Control((ControlType.ERASE_IN_LINE, 0))))

    def clear_to_end_of_display(self) -> None:
        self._control(CLEAR_TO_END_OF_DISPLAY)

    def hide_cursor(self) -> None:
        self._control(str(Control.show_cursor(False)))

    def show_cursor(self) -> None:
        self._control(str(Control.show_cursor(True)))

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------

    async def prompt(self, text: str) -> str:
        """
        Ask for a line of input with echo on.

        Parameters
        ----------
        text : str
            Prompt label, printed as ``"<text>: "``

        Returns
        -------
        str
            The line typed, without its line terminator
        """
        self.say(f"{text}: ")
        return await self._read_line()

    async def prompt_for_password(self, text: str) -> str:
        """
        Ask for a line of input with terminal echo disabled.

        The echo-restore callback is registered with the exit handler
        before echo is turned off, so an interrupt during the prompt
        leaves the terminal usable.
        """
        self.say(f"{text}: ")
        with self._echo_disabled():
            line = await self._read_line()
        self.say_new_line()
        return line

    async def _read_line(self) -> str:
        # Blocking reads happen on a daemon thread so the event loop keeps
        # servicing signals while the user types.
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str] = loop.create_future()

        def deliver(result: str | BaseException) -> None:
            if future.done():
                return
            if isinstance(result, BaseException):
                future.set_exception(result)
            else:
                future.set_result(result)

        def reader() -> None:
            try:
                line = self.input_stream.readline()
            except (OSError, ValueError) as e:
                loop.call_soon_threadsafe(deliver, e)
                return
            loop.call_soon_threadsafe(deliver, line)

        threading.Thread(target=reader, name="ltc-prompt", daemon=True).start()
        line = await future
        return line.rstrip("\r\n")

    @contextmanager
    def _echo_disabled(self) -> Iterator[None]:
        try:
            fd = self.input_stream.fileno()
            is_tty = self.input_stream.isatty()
        except (AttributeError, OSError, ValueError):
            is_tty = False

        if not is_tty:
            yield
            return

        original = termios.tcgetattr(fd)

        def restore_echo() -> None:
            termios.tcsetattr(fd, termios.TCSADRAIN, original)

        if self.exit_handler is not None:
            self.exit_handler.on_exit(restore_echo)

        silent = termios.tcgetattr(fd)
        silent[3] &= ~termios.ECHO
        termios.tcsetattr(fd, termios.TCSADRAIN, silent)
        try:
            yield
        finally:
            restore_echo()
