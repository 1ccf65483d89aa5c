"""``logs`` and ``debug-logs``."""

import logging

from ltc.app_examiner import AppExaminer
from ltc.common.exceptions import LatticeError
from ltc.exit_handler import ExitCode, ExitHandler
from ltc.logs import ConsoleTailedLogsOutputter
from ltc.terminal import TerminalUI

logger = logging.getLogger(__name__)


class LogsCommands:
    """
    Log tailing commands.

    Both commands stream until interrupted.

    Parameters
    ----------
    ui : TerminalUI
        Output terminal
    app_examiner : AppExaminer
        Checks whether the app exists before tailing
    tailed_logs_outputter : ConsoleTailedLogsOutputter
        Prints the stream
    exit_handler : ExitHandler
        Exit path
    """

    def __init__(
        self,
        ui: TerminalUI,
        app_examiner: AppExaminer,
        tailed_logs_outputter: ConsoleTailedLogsOutputter,
        exit_handler: ExitHandler,
    ) -> None:
        self.ui = ui
        self.app_examiner = app_examiner
        self.tailed_logs_outputter = tailed_logs_outputter
        self.exit_handler = exit_handler

    async def tail_logs(self, app_guid: str) -> None:
        """Tail an app's logs, waiting for it to appear if it does not exist yet."""
        if not app_guid:
            self.ui.say_incorrect_usage("")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            exists = await self.app_examiner.app_exists(app_guid)
        except LatticeError as e:
            self.ui.say_line(f"Error: {e}")
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        if not exists:
            self.ui.say_line(f"Application {app_guid} not found.")
            self.ui.say_line(f"Tailing logs and waiting for {app_guid} to appear...")

        await self.tailed_logs_outputter.output_tailed_logs(app_guid)

    async def tail_debug_logs(self, raw: bool = False) -> None:
        """Tail the lattice component logs."""
        await self.tailed_logs_outputter.output_debug_logs(pretty=not raw)
