"""Print tailed logs to the terminal."""

import logging
from datetime import datetime

from ltc.common.exceptions import LatticeError
from ltc.common.models import RESERVED_DEBUG_GUID
from ltc.logs.envelope import LogMessage
from ltc.logs.prettify import prettify
from ltc.logs.reader import LogReader
from ltc.terminal import TerminalUI, cyan, yellow

logger = logging.getLogger(__name__)


class ConsoleTailedLogsOutputter:
    """
    Write log messages as they arrive.

    Parameters
    ----------
    ui : TerminalUI
        Where lines are written
    log_reader : LogReader
        Source of messages
    """

    def __init__(self, ui: TerminalUI, log_reader: LogReader) -> None:
        self.ui = ui
        self.log_reader = log_reader

    async def output_tailed_logs(self, app_guid: str) -> None:
        """Tail ``app_guid`` as ``HH:MM:SS [source|instance] message`` lines."""
        await self.log_reader.tail_logs(app_guid, self._log_callback, self._error_callback)

    async def output_debug_logs(self, pretty: bool) -> None:
        """Tail the lattice component logs, prettified or as raw message bodies."""
        if pretty:
            callback = self._pretty_debug_log_callback
        else:
            callback = self._raw_debug_log_callback
        await self.log_reader.tail_logs(RESERVED_DEBUG_GUID, callback, self._error_callback)

    async def stop_outputting(self) -> None:
        await self.log_reader.stop_tailing()

    def _log_callback(self, log: LogMessage) -> None:
        moment = datetime.fromtimestamp(log.timestamp / 1e9)
        self.ui.say_line(
            cyan(f"{moment:%H:%M:%S}"),
            " [",
            yellow(log.source_type),
            "|",
            yellow(log.source_instance),
            "] ",
            log.text,
        )

    def _pretty_debug_log_callback(self, log: LogMessage) -> None:
        self.ui.say_line(prettify(log))

    def _raw_debug_log_callback(self, log: LogMessage) -> None:
        self.ui.say_line(log.text)

    def _error_callback(self, error: LatticeError) -> None:
        logger.debug(f"Log stream error: {error!r}")
        self.ui.say_line(str(error))
