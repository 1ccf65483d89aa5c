"""Tests for the receptor HTTP client and the target verifiers."""

import base64
from unittest import mock
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from botocore.exceptions import ClientError, EndpointConnectionError

from ltc.common.exceptions import (
    AlreadyExistsError,
    AppNotFoundError,
    LatticeError,
    NetworkUnreachableError,
    RemoteRejectedError,
    TaskNotFoundError,
    UnauthorizedError,
)
from ltc.common.models import DesiredLRPUpdateRequest
from ltc.config import BlobTargetInfo
from ltc.receptor_client import ReceptorClient
from ltc.target_verifier import BlobTargetVerifier, TargetVerifier, s3_client


class FakeReceptor:
    """Canned responses keyed by ``(method, path)`` plus a request log."""

    def __init__(self):
        self.responses = {}
        self.requests = []

    def respond(self, method, path, status=200, json=None, text=None, headers=None):
        self.responses[(method, path)] = (status, json, text, headers or {})

    async def handle(self, request):
        body = await request.text()
        self.requests.append((request.method, request.path_qs, dict(request.headers), body))
        status, json_body, text, headers = self.responses.get(
            (request.method, request.path), (404, None, "not found", {})
        )
        if json_body is not None:
            return web.json_response(json_body, status=status, headers=headers)
        return web.Response(status=status, text=text, headers=headers)


@pytest_asyncio.fixture
async def receptor():
    """Start a fake receptor and yield it with its base URL."""
    fake = FakeReceptor()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", fake.handle)
    server = TestServer(app)
    await server.start_server()
    fake.url = str(server.make_url("")).rstrip("/")
    fake.server = server
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def client(receptor):
    """Create a client for the fake receptor."""
    client = ReceptorClient(receptor.url)
    yield client
    await client.close()


class TestReceptorClient:
    """Tests for request encoding and response mapping."""

    @pytest.mark.asyncio
    async def test_desired_lrps(self, receptor, client):
        """Test parsing a listing."""
        receptor.respond("GET", "/v1/desired_lrps", json=[{"process_guid": "a", "instances": 2}])

        apps = await client.desired_lrps()

        assert [(app.process_guid, app.instances) for app in apps] == [("a", 2)]

    @pytest.mark.asyncio
    async def test_null_listing(self, receptor, client):
        """Test that a JSON null listing is empty."""
        receptor.respond("GET", "/v1/cells", json=None, text="null", headers={"Content-Type": "application/json"})

        assert await client.cells() == []

    @pytest.mark.asyncio
    async def test_update_payload(self, receptor, client):
        """Test that updates send only the fields set."""
        receptor.respond("PUT", "/v1/desired_lrps/myapp", status=204, text="")

        await client.update_desired_lrp("myapp", DesiredLRPUpdateRequest(instances=3))

        method, path, headers, body = receptor.requests[0]
        assert (method, path, body) == ("PUT", "/v1/desired_lrps/myapp", '{"instances": 3}')

    @pytest.mark.asyncio
    async def test_upsert_domain_ttl(self, receptor, client):
        """Test the cache-control header for domain TTLs."""
        receptor.respond("PUT", "/v1/domains/lattice", status=204, text="")

        await client.upsert_domain("lattice", 0)
        await client.upsert_domain("lattice", 60)

        assert "Cache-Control" not in receptor.requests[0][2]
        assert receptor.requests[1][2]["Cache-Control"] == "max-age=60"

    @pytest.mark.asyncio
    async def test_basic_auth_from_url(self, receptor):
        """Test that URL credentials are sent as basic auth."""
        receptor.respond("GET", "/v1/tasks", json=[])
        url = receptor.url.replace("http://", "http://user:pass@")

        async with ReceptorClient(url) as client:
            await client.tasks()

        expected = "Basic " + base64.b64encode(b"user:pass").decode()
        assert receptor.requests[0][2]["Authorization"] == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("name", "error_class"),
        [
            ("Unauthorized", UnauthorizedError),
            ("DesiredLRPNotFound", AppNotFoundError),
            ("TaskNotFound", TaskNotFoundError),
            ("DesiredLRPAlreadyExists", AlreadyExistsError),
            ("TaskGuidAlreadyExists", AlreadyExistsError),
        ],
    )
    async def test_error_bodies(self, receptor, client, name, error_class):
        """Test that named receptor errors map onto the hierarchy."""
        receptor.respond("GET", "/v1/tasks/t1", status=400, json={"name": name, "message": "nope"})

        with pytest.raises(error_class, match="nope"):
            await client.get_task("t1")

    @pytest.mark.asyncio
    async def test_unknown_error_body(self, receptor, client):
        """Test that other receptor errors keep their name."""
        receptor.respond("POST", "/v1/tasks", status=422, json={"name": "InvalidTask", "message": "bad action"})

        with pytest.raises(RemoteRejectedError) as exc_info:
            await client._request("POST", "/v1/tasks", payload={})

        assert str(exc_info.value) == "bad action"
        assert exc_info.value.details["error_type"] == "InvalidTask"

    @pytest.mark.asyncio
    async def test_non_json_error(self, receptor, client):
        """Test that a non-JSON failure reports its status code."""
        receptor.respond("DELETE", "/v1/desired_lrps/myapp", status=500, text="oops")

        with pytest.raises(RemoteRejectedError, match="Invalid Response with status code: 500"):
            await client.delete_desired_lrp("myapp")

    @pytest.mark.asyncio
    async def test_non_json_unauthorized(self, receptor, client):
        """Test that a bare 401 is an authorization error."""
        receptor.respond("GET", "/v1/desired_lrps", status=401, text="")

        with pytest.raises(UnauthorizedError):
            await client.desired_lrps()

    @pytest.mark.asyncio
    async def test_router_error_header(self, receptor, client):
        """Test that the router error header wins over the body."""
        receptor.respond(
            "GET", "/v1/actual_lrps", status=404, text="", headers={"X-Cf-Routererror": "unknown_route"}
        )

        with pytest.raises(RemoteRejectedError, match="unknown_route"):
            await client.actual_lrps()

    @pytest.mark.asyncio
    async def test_invalid_json(self, receptor, client):
        """Test a JSON content type with an unparseable body."""
        receptor.respond("GET", "/v1/tasks", text="{", headers={"Content-Type": "application/json"})

        with pytest.raises(RemoteRejectedError) as exc_info:
            await client.tasks()

        assert exc_info.value.details["status"] == 200

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """Test that a refused connection is a network error."""
        async with ReceptorClient("http://127.0.0.1:1", timeout=5) as client:
            with pytest.raises(NetworkUnreachableError):
                await client.desired_lrps()


class TestTargetVerifier:
    """Tests for classifying receptor probes."""

    @pytest.mark.asyncio
    async def test_authorized(self, receptor):
        """Test a receptor that answers the listing."""
        receptor.respond("GET", "/v1/desired_lrps", json=[])

        assert tuple(await TargetVerifier().verify_target(receptor.url)) == (True, True, None)

    @pytest.mark.asyncio
    async def test_unauthorized(self, receptor):
        """Test a receptor that wants credentials."""
        receptor.respond("GET", "/v1/desired_lrps", status=401, json={"name": "Unauthorized", "message": "no"})

        assert tuple(await TargetVerifier().verify_target(receptor.url)) == (True, False, None)

    @pytest.mark.asyncio
    async def test_other_error(self, receptor):
        """Test that other errors are reported as reachable."""
        receptor.respond("GET", "/v1/desired_lrps", status=500, text="")

        reachable, authorized, error = await TargetVerifier().verify_target(receptor.url)

        assert (reachable, authorized) == (True, False)
        assert isinstance(error, RemoteRejectedError)

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """Test an unreachable receptor."""
        reachable, authorized, error = await TargetVerifier().verify_target("http://127.0.0.1:1")

        assert (reachable, authorized) == (False, False)
        assert isinstance(error, NetworkUnreachableError)


class TestBlobTargetVerifier:
    """Tests for the blob store probe."""

    blob_target = BlobTargetInfo(
        host="blob.example.io", port=8980, access_key="access", secret_key="secret", bucket_name="bucket"
    )

    def verifier(self, client):
        return BlobTargetVerifier(client_factory=lambda blob_target: client)

    def client_error(self, status, code):
        return ClientError(
            {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
            "ListObjects",
        )

    @mock.patch("ltc.target_verifier.boto3.client")
    def test_client_points_at_blob_store(self, mock_client):
        """Test that the S3 client uses the endpoint and keys of the blob target."""
        s3_client(self.blob_target)

        args, kwargs = mock_client.call_args
        assert args == ("s3",)
        assert kwargs["endpoint_url"] == "http://blob.example.io:8980"
        assert kwargs["aws_access_key_id"] == "access"
        assert kwargs["aws_secret_access_key"] == "secret"

    @pytest.mark.asyncio
    async def test_success(self):
        """Test a one key bucket listing."""
        client = MagicMock()

        await self.verifier(client).verify_blob_target(self.blob_target)

        client.list_objects.assert_called_once_with(Bucket="bucket", MaxKeys=1)

    @pytest.mark.asyncio
    async def test_forbidden(self):
        """Test that a 403 is an authorization error."""
        client = MagicMock()
        client.list_objects.side_effect = self.client_error(403, "AccessDenied")

        with pytest.raises(UnauthorizedError, match="unauthorized"):
            await self.verifier(client).verify_blob_target(self.blob_target)

    @pytest.mark.asyncio
    async def test_other_status(self):
        """Test that other failures are generic errors."""
        client = MagicMock()
        client.list_objects.side_effect = self.client_error(500, "InternalError")

        with pytest.raises(LatticeError, match="unexpected status code 500") as exc_info:
            await self.verifier(client).verify_blob_target(self.blob_target)

        assert not isinstance(exc_info.value, UnauthorizedError)
        assert exc_info.value.details["code"] == "InternalError"

    @pytest.mark.asyncio
    async def test_down(self):
        """Test an unreachable store."""
        client = MagicMock()
        client.list_objects.side_effect = EndpointConnectionError(endpoint_url="http://blob.example.io:8980")

        with pytest.raises(NetworkUnreachableError, match="blob target is down"):
            await self.verifier(client).verify_blob_target(self.blob_target)

    @pytest.mark.asyncio
    async def test_down_with_real_client(self):
        """Test an unreachable store through a real S3 client."""
        blob = BlobTargetInfo(host="127.0.0.1", port=1, access_key="a", secret_key="s", bucket_name="b")

        with pytest.raises(NetworkUnreachableError, match="blob target is down"):
            await BlobTargetVerifier().verify_blob_target(blob)
