"""Callback-style log tailing on top of :class:`~ltc.logs.consumer.NoaaConsumer`."""

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from ltc.common.exceptions import LatticeError
from ltc.logs.envelope import ContainerMetric, LogMessage

logger = logging.getLogger(__name__)

QUEUE_SIZE = 10


class LogConsumer(Protocol):
    async def tailing_logs(
        self,
        app_guid: str,
        output: asyncio.Queue[LogMessage],
        errors: asyncio.Queue[LatticeError],
    ) -> None: ...

    async def container_metrics(self, app_guid: str) -> list[ContainerMetric]: ...

    async def close(self) -> None: ...


class LogReader:
    """
    Deliver streamed messages and errors to callbacks.

    Messages reach ``on_message`` in the order the consumer produced them,
    each exactly once. Once :meth:`stop_tailing` has been called no further
    callback runs.

    Parameters
    ----------
    consumer : LogConsumer
        Producer of log messages
    """

    def __init__(self, consumer: LogConsumer) -> None:
        self.consumer = consumer
        self._stopped = asyncio.Event()

    async def tail_logs(
        self,
        app_guid: str,
        on_message: Callable[[LogMessage], None],
        on_error: Callable[[LatticeError], None],
    ) -> None:
        """
        Stream ``app_guid`` until stopped or the consumer gives up.

        Parameters
        ----------
        app_guid : str
            Log guid of the app (its process guid)
        on_message : Callable[[LogMessage], None]
            Called for every message
        on_error : Callable[[LatticeError], None]
            Called for every stream error
        """
        output: asyncio.Queue[LogMessage] = asyncio.Queue(maxsize=QUEUE_SIZE)
        errors: asyncio.Queue[LatticeError] = asyncio.Queue(maxsize=QUEUE_SIZE)

        producer = asyncio.create_task(self.consumer.tailing_logs(app_guid, output, errors))
        next_message = asyncio.create_task(output.get())
        next_error = asyncio.create_task(errors.get())
        stopped = asyncio.create_task(self._stopped.wait())

        try:
            while True:
                done, _ = await asyncio.wait(
                    {next_message, next_error, stopped, producer},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if stopped in done:
                    return

                if next_error in done:
                    if self._stopped.is_set():
                        return
                    on_error(next_error.result())
                    next_error = asyncio.create_task(errors.get())
                if next_message in done:
                    if self._stopped.is_set():
                        return
                    on_message(next_message.result())
                    next_message = asyncio.create_task(output.get())

                if producer in done:
                    self._drain(output, errors, on_message, on_error)
                    if self._stopped.is_set():
                        return
                    if not producer.cancelled() and producer.exception() is not None:
                        exc = producer.exception()
                        logger.error(f"Log stream for {app_guid} crashed: {exc!r}")
                        on_error(LatticeError(str(exc)))
                    return
        finally:
            for task in (next_message, next_error, stopped, producer):
                task.cancel()
            await asyncio.gather(next_message, next_error, stopped, producer, return_exceptions=True)
            await self.consumer.close()

    def _drain(
        self,
        output: asyncio.Queue[LogMessage],
        errors: asyncio.Queue[LatticeError],
        on_message: Callable[[LogMessage], None],
        on_error: Callable[[LatticeError], None],
    ) -> None:
        while not errors.empty() and not self._stopped.is_set():
            on_error(errors.get_nowait())
        while not output.empty() and not self._stopped.is_set():
            on_message(output.get_nowait())

    async def stop_tailing(self) -> None:
        """Stop tailing for good. Safe to call more than once, or before tailing starts."""
        self._stopped.set()
        await self.consumer.close()
