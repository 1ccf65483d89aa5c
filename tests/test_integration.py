"""Tests for the cluster test runner."""

import itertools

import pytest

from conftest import output_of
from ltc.integration import ClusterTestError, CommandResult, IntegrationTestRunner


class FakeCluster:
    """Answers CLI invocations and route probes like a small cluster."""

    def __init__(self):
        self.commands = []
        self.exit_codes = {}
        self.outputs = {}
        self.app_up = False
        self.probes_until_up = 0
        self.instance_count = 3
        self._indexes = None

    async def run_command(self, args, timeout):
        self.commands.append(args)
        command, app_name = args[0], args[1]
        if command == "create":
            self.app_up = True
            output = self.outputs.get("create", f"Creating App: {app_name}\n{app_name} is now running.\n")
        elif command == "scale":
            output = self.outputs.get("scale", "Scaling 3 instances\nApp Scaled Successfully\n")
        else:
            self.app_up = False
            output = ""
        return CommandResult(self.exit_codes.get(command, 0), output)

    async def probe(self, url):
        if not self.app_up:
            return None
        if self.probes_until_up:
            self.probes_until_up -= 1
            return None
        if url.endswith("/index"):
            if self._indexes is None:
                self._indexes = itertools.cycle(str(i) for i in range(self.instance_count))
            return f"{next(self._indexes)}\n"
        return "Hello Lattice User"


@pytest.fixture
def cluster():
    """Create a fake cluster."""
    return FakeCluster()


@pytest.fixture
def runner(ui, clock, cluster):
    """Create a runner against the fake cluster."""
    return IntegrationTestRunner(
        ui, "192.168.11.11.xip.io", clock, command_runner=cluster.run_command, route_probe=cluster.probe
    )


class TestIntegrationTestRunner:
    """Tests for the cluster test steps."""

    @pytest.mark.asyncio
    async def test_passes(self, runner, cluster, ui):
        """Test the full create, scale and remove sequence."""
        cluster.probes_until_up = 2

        await runner.run(30)

        create, scale, remove = cluster.commands
        app_name = create[1]
        assert app_name.startswith("lattice-test-app-")
        assert create == [
            "create",
            app_name,
            "cloudfoundry/lattice-app",
            "--timeout=30",
            "--working-dir=/",
            "--",
            "/lattice-app",
            "--message",
            "Hello Lattice User",
            "--quiet",
        ]
        assert scale == ["scale", app_name, "3", "--timeout=30"]
        assert remove == ["remove", app_name]
        out = output_of(ui)
        assert f"Waiting for http://{app_name}.192.168.11.11.xip.io to answer" in out
        assert out.endswith("Cluster test passed\n")

    @pytest.mark.asyncio
    async def test_verbose_echoes_output(self, ui, clock, cluster):
        """Test that verbose mode prints each command's output."""
        runner = IntegrationTestRunner(
            ui, "lattice.io", clock, command_runner=cluster.run_command, route_probe=cluster.probe
        )

        await runner.run(10, verbose=True)

        assert "[scale] App Scaled Successfully" in output_of(ui)

    @pytest.mark.asyncio
    async def test_create_failure(self, runner, cluster):
        """Test that a failed create skips removal."""
        cluster.exit_codes["create"] = 11

        with pytest.raises(ClusterTestError, match="ltc create exited with status 11"):
            await runner.run(30)

        assert [args[0] for args in cluster.commands] == ["create"]

    @pytest.mark.asyncio
    async def test_missing_confirmation(self, runner, cluster):
        """Test that create must report the app running."""
        cluster.outputs["create"] = "No container started\n"

        with pytest.raises(ClusterTestError, match="is now running"):
            await runner.run(30)

    @pytest.mark.asyncio
    async def test_route_never_up(self, runner, cluster, clock):
        """Test that the app is removed when its route never answers."""
        cluster.probes_until_up = 1000

        with pytest.raises(ClusterTestError, match="did not come up"):
            await runner.run(5)

        assert [args[0] for args in cluster.commands] == ["create", "remove"]
        assert clock.sleeps == [1, 1, 1, 1, 1]

    @pytest.mark.asyncio
    async def test_too_few_instances(self, runner, cluster):
        """Test that fewer distinct instances than requested fail the test."""
        cluster.instance_count = 2

        with pytest.raises(ClusterTestError, match="saw 2 of 3 instances"):
            await runner.run(5)

        assert cluster.commands[-1][0] == "remove"

    @pytest.mark.asyncio
    async def test_route_still_up_after_remove(self, runner, cluster):
        """Test that a route surviving removal fails the test."""
        original = cluster.run_command

        async def remove_leaves_route(args, timeout):
            result = await original(args, timeout)
            cluster.app_up = True
            return result

        runner.command_runner = remove_leaves_route

        with pytest.raises(ClusterTestError, match="still answers after removal"):
            await runner.run(5)
