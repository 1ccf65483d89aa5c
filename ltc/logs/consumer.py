"""
Doppler WebSocket consumer.

Streams ``LogMessage`` envelopes for one app into a bounded queue and
reconnects a limited number of times when the connection drops. Also
fetches the current container metrics of an app.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import aiohttp

from ltc.common.exceptions import LatticeError, NetworkUnreachableError
from ltc.logs.envelope import ContainerMetric, EnvelopeDecodeError, LogMessage, decode_envelope

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
RETRY_INTERVAL_SECONDS = 0.5
METRICS_TIMEOUT_SECONDS = 10


class NoaaConsumer:
    """
    Client for doppler's ``/apps/<guid>/...`` WebSocket endpoints.

    Parameters
    ----------
    url : str
        Doppler base URL, e.g. ``ws://doppler.192.168.11.11.xip.io``
    session : aiohttp.ClientSession, optional
        HTTP session to reuse; one is created on first use otherwise
    max_retries : int, optional
        Reconnect attempts after the stream fails (default: 5)
    retry_interval : float, optional
        Seconds between reconnect attempts (default: 0.5)
    sleep : Callable[[float], Awaitable[None]], optional
        Sleep used between attempts (default: :func:`asyncio.sleep`)
    """

    def __init__(
        self,
        url: str,
        session: aiohttp.ClientSession | None = None,
        max_retries: int = MAX_RETRIES,
        retry_interval: float = RETRY_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url.rstrip("/")
        self.max_retries = max_retries
        self.retry_interval = retry_interval
        self._sleep = sleep
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._closed = False

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def tailing_logs(
        self,
        app_guid: str,
        output: asyncio.Queue[LogMessage],
        errors: asyncio.Queue[LatticeError],
    ) -> None:
        """
        Push log messages for ``app_guid`` into ``output`` until closed.

        Every failure is pushed into ``errors``. After ``max_retries``
        consecutive failed attempts the method returns. Both queues may be
        bounded; a full queue blocks the stream rather than dropping
        messages.
        """
        url = f"{self.url}/apps/{app_guid}/stream"
        failures = 0

        while not self._closed:
            try:
                async with self._get_session().ws_connect(url) as ws:
                    self._ws = ws
                    failures = 0
                    logger.debug(f"Connected to {url}")
                    async for frame in ws:
                        if frame.type == aiohttp.WSMsgType.BINARY:
                            await self._deliver(frame.data, output, errors)
                        elif frame.type == aiohttp.WSMsgType.ERROR:
                            raise ws.exception() or aiohttp.ClientError("websocket error")
                if self._closed:
                    return
                raise aiohttp.ClientError(f"log stream for {app_guid} closed by server")
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                if self._closed:
                    return
                failures += 1
                logger.info(f"Log stream failure {failures}/{self.max_retries + 1}: {e}")
                await errors.put(NetworkUnreachableError(str(e), details={"url": url}))
                if failures > self.max_retries:
                    return
                await self._sleep(self.retry_interval)
            finally:
                self._ws = None

    async def _deliver(
        self,
        data: bytes,
        output: asyncio.Queue[LogMessage],
        errors: asyncio.Queue[LatticeError],
    ) -> None:
        try:
            envelope = decode_envelope(data)
        except EnvelopeDecodeError as e:
            await errors.put(e)
            return
        if envelope.log_message is not None:
            await output.put(envelope.log_message)

    async def container_metrics(self, app_guid: str) -> list[ContainerMetric]:
        """
        Latest metric per instance of ``app_guid``, ordered by instance index.

        Raises
        ------
        NetworkUnreachableError
            If doppler cannot be reached
        """
        url = f"{self.url}/apps/{app_guid}/containermetrics"
        latest: dict[int, ContainerMetric] = {}
        try:
            async with asyncio.timeout(METRICS_TIMEOUT_SECONDS):
                async with self._get_session().ws_connect(url) as ws:
                    async for frame in ws:
                        if frame.type != aiohttp.WSMsgType.BINARY:
                            continue
                        envelope = decode_envelope(frame.data)
                        if envelope.container_metric is not None:
                            metric = envelope.container_metric
                            latest[metric.instance_index] = metric
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, EnvelopeDecodeError) as e:
            raise NetworkUnreachableError(
                f"Unable to fetch container metrics: {e}", details={"url": url}
            ) from e
        return [latest[index] for index in sorted(latest)]

    async def close(self) -> None:
        """Stop streaming and release the connection. Safe to call twice."""
        self._closed = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
