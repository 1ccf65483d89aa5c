"""
Black-box check of a lattice cluster for ``ltc test``.

The runner drives the CLI itself in child processes against the current
target: it creates an app from ``cloudfoundry/lattice-app``, waits for its
route to answer, scales it to three instances, then removes it and waits
for the route to go away.
"""

import asyncio
import logging
import sys
import uuid
from collections.abc import Awaitable, Callable
from typing import NamedTuple

import aiohttp

from ltc.clock import Clock
from ltc.common.exceptions import LatticeError
from ltc.terminal import TerminalUI, cyan, green

logger = logging.getLogger(__name__)

TEST_APP_IMAGE = "cloudfoundry/lattice-app"
SCALED_INSTANCES = 3
PROBE_TIMEOUT_SECONDS = 5


class ClusterTestError(LatticeError):
    """Raised when a step of the cluster test fails."""

    pass


class CommandResult(NamedTuple):
    exit_code: int
    output: str


CommandRunner = Callable[[list[str], float], Awaitable[CommandResult]]
RouteProbe = Callable[[str], Awaitable[str | None]]


async def run_ltc(args: list[str], timeout: float) -> CommandResult:
    """Run ``ltc <args>`` in a child process and collect its output."""
    process = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "ltc",
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        raise ClusterTestError(f"ltc {args[0]} did not finish within {timeout:g}s") from None
    return CommandResult(process.returncode or 0, stdout.decode(errors="replace"))


async def probe_route(url: str) -> str | None:
    """Body of a successful GET on ``url``, or None when it does not answer 200."""
    timeout = aiohttp.ClientTimeout(total=PROBE_TIMEOUT_SECONDS)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session, session.get(url) as response:
            if response.status != 200:
                return None
            return await response.text()
    except (aiohttp.ClientError, TimeoutError) as e:
        logger.debug(f"Probe of {url} failed: {e!r}")
        return None


class IntegrationTestRunner:
    """
    Run the cluster test.

    Parameters
    ----------
    ui : TerminalUI
        Progress output
    target : str
        Lattice target domain the test app is routed under
    clock : Clock
        Poll timing
    command_runner : CommandRunner, optional
        Runs the CLI (default: child ``python -m ltc`` processes)
    route_probe : RouteProbe, optional
        Fetches an app route (default: aiohttp GET)
    """

    def __init__(
        self,
        ui: TerminalUI,
        target: str,
        clock: Clock,
        command_runner: CommandRunner | None = None,
        route_probe: RouteProbe | None = None,
    ) -> None:
        self.ui = ui
        self.target = target
        self.clock = clock
        self.command_runner = command_runner or run_ltc
        self.route_probe = route_probe or probe_route

    async def run(self, timeout: float, verbose: bool = False) -> None:
        """
        Run every step, removing the test app even when a step fails.

        Raises
        ------
        ClusterTestError
            On the first failing step
        """
        self.verbose = verbose
        app_name = f"lattice-test-app-{uuid.uuid4()}"
        route = f"http://{app_name}.{self.target}"
        created = False

        try:
            self._step(f"Creating {app_name} from {TEST_APP_IMAGE}")
            await self._ltc(
                timeout,
                "create",
                app_name,
                TEST_APP_IMAGE,
                f"--timeout={int(timeout)}",
                "--working-dir=/",
                "--",
                "/lattice-app",
                "--message",
                "Hello Lattice User",
                "--quiet",
                expect=f"{app_name} is now running.",
            )
            created = True

            self._step(f"Waiting for {route} to answer")
            if not await self._poll(timeout, lambda: self._route_up(route)):
                raise ClusterTestError(f"{route} did not come up")

            self._step(f"Scaling {app_name} to {SCALED_INSTANCES} instances")
            await self._ltc(
                timeout,
                "scale",
                app_name,
                str(SCALED_INSTANCES),
                f"--timeout={int(timeout)}",
                expect="App Scaled Successfully",
            )

            self._step(f"Counting instances behind {route}")
            indexes: set[str] = set()

            async def all_instances_seen() -> bool:
                body = await self.route_probe(f"{route}/index")
                if body is not None:
                    indexes.add(body.strip())
                return len(indexes) >= SCALED_INSTANCES

            if not await self._poll(timeout, all_instances_seen):
                raise ClusterTestError(f"saw {len(indexes)} of {SCALED_INSTANCES} instances")
        finally:
            if created:
                self._step(f"Removing {app_name}")
                await self._ltc(timeout, "remove", app_name)

        self._step(f"Waiting for {route} to go away")
        if not await self._poll(timeout, lambda: self._route_down(route)):
            raise ClusterTestError(f"{route} still answers after removal")

        self.ui.say_line(green("Cluster test passed"))

    def _step(self, message: str) -> None:
        logger.info(message)
        self.ui.say_line(cyan(message))

    async def _ltc(self, timeout: float, *args: str, expect: str | None = None) -> str:
        result = await self.command_runner(list(args), timeout)
        if self.verbose:
            for line in result.output.splitlines():
                self.ui.say_line(f"[{args[0]}] {line}")
        if result.exit_code != 0:
            raise ClusterTestError(f"ltc {args[0]} exited with status {result.exit_code}")
        if expect is not None and expect not in result.output:
            raise ClusterTestError(f"ltc {args[0]} did not report '{expect}'")
        return result.output

    async def _route_up(self, url: str) -> bool:
        return await self.route_probe(url) is not None

    async def _route_down(self, url: str) -> bool:
        return await self.route_probe(url) is None

    async def _poll(self, timeout: float, check: Callable[[], Awaitable[bool]]) -> bool:
        started = self.clock.now()
        while (self.clock.now() - started).total_seconds() < timeout:
            if await check():
                return True
            await self.clock.sleep(1)
        return False
