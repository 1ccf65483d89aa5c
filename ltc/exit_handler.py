"""
Process-wide exit coordination.

Every command runs its coroutine through :meth:`ExitHandler.run`. Cleanup
callbacks (cursor restore, TTY echo restore, stopping log tails) are
registered with :meth:`ExitHandler.on_exit` and run exactly once, in
registration order, whether the process ends normally, through
:meth:`ExitHandler.exit`, or on Ctrl-C.
"""

import asyncio
import logging
import signal
from collections.abc import Callable, Coroutine
from enum import IntEnum
from typing import Any, NoReturn, TypeVar

import typer

logger = logging.getLogger(__name__)

T = TypeVar("T")

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ExitCode(IntEnum):
    """Exit codes reported by ``ltc``."""

    SUCCESS = 0
    ERROR = 1
    BAD_TARGET = 10
    PLACEMENT_ERROR = 11
    FILE_SYSTEM_ERROR = 12
    INVALID_SYNTAX = 13
    COMMAND_FAILED = 14
    BAD_DOCKER = 15
    SIG_INT = 130


class ExitHandler:
    """
    Sink for interrupts and holder of cleanup callbacks.

    Examples
    --------
    >>> handler = ExitHandler()
    >>> handler.on_exit(lambda: print("bye"))
    >>> handler.run_callbacks()
    bye
    >>> handler.run_callbacks()
    """

    def __init__(self) -> None:
        self._callbacks: list[Callable[[], None]] = []
        self._ran = False
        self.interrupted = False

    def on_exit(self, callback: Callable[[], None]) -> None:
        """Register a cleanup callback."""
        self._callbacks.append(callback)

    def run_callbacks(self) -> None:
        """
        Run every registered callback once, in registration order.

        A failing callback is logged and does not prevent the remaining
        callbacks from running.
        """
        if self._ran:
            return
        self._ran = True
        for callback in self._callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Exit callback {callback!r} failed: {e}")

    def exit(self, code: int) -> NoReturn:
        """
        Run the cleanup callbacks and terminate with ``code``.

        Parameters
        ----------
        code : int
            Process exit code (usually an :class:`ExitCode`)

        Raises
        ------
        typer.Exit
            Always; the CLI turns it into the process exit status
        """
        self.run_callbacks()
        raise typer.Exit(int(code))

    def run(self, main: Coroutine[Any, Any, T]) -> T:
        """
        Run ``main`` on a fresh event loop with interrupt handling.

        SIGINT and SIGTERM run the callbacks immediately, cancel ``main``
        and end the process with :attr:`ExitCode.SIG_INT`.

        Parameters
        ----------
        main : Coroutine
            The command's coroutine

        Returns
        -------
        T
            Whatever ``main`` returns
        """
        try:
            return asyncio.run(self._supervise(main))
        finally:
            self.run_callbacks()

    async def _supervise(self, main: Coroutine[Any, Any, T]) -> T:
        loop = asyncio.get_running_loop()
        task = asyncio.current_task()

        for sig in HANDLED_SIGNALS:
            loop.add_signal_handler(sig, self._interrupt, task)

        try:
            return await main
        except asyncio.CancelledError:
            if self.interrupted:
                raise typer.Exit(int(ExitCode.SIG_INT)) from None
            raise
        finally:
            for sig in HANDLED_SIGNALS:
                loop.remove_signal_handler(sig)

    def _interrupt(self, task: asyncio.Task | None) -> None:
        logger.debug("Interrupt received, running exit callbacks")
        self.interrupted = True
        self.run_callbacks()
        if task is not None:
            task.cancel()
