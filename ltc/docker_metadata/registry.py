"""
Minimal Docker registry v2 client over aiohttp.

Only the read path the CLI needs is implemented: anonymous bearer-token
negotiation, tag listing, manifest resolution (including multi-platform
indexes) and fetching the image config blob.
"""

import asyncio
import json
import logging
import re
from types import TracebackType
from typing import Any

import aiohttp

from ltc.common.exceptions import DockerMetadataError

logger = logging.getLogger(__name__)

DOCKER_HUB_REGISTRY = "https://registry-1.docker.io"
REGISTRY_TIMEOUT_SECONDS = 30

MANIFEST_LIST_TYPES = (
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.index.v1+json",
)
MANIFEST_ACCEPT = ", ".join(
    [
        *MANIFEST_LIST_TYPES,
        "application/vnd.docker.distribution.manifest.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
    ]
)

DEFAULT_PLATFORM = {"os": "linux", "architecture": "amd64"}

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


def registry_endpoints(index_name: str) -> list[str]:
    """
    Base URLs to try for a registry host, in order.

    Docker Hub is always reached over TLS; other registries fall back to
    plain HTTP when TLS fails.

    Examples
    --------
    >>> registry_endpoints("")
    ['https://registry-1.docker.io']
    >>> registry_endpoints("localhost:5000")
    ['https://localhost:5000', 'http://localhost:5000']
    """
    if not index_name or index_name in ("docker.io", "index.docker.io"):
        return [DOCKER_HUB_REGISTRY]
    return [f"https://{index_name}", f"http://{index_name}"]


def parse_auth_challenge(header: str) -> dict[str, str]:
    """
    Parse a ``WWW-Authenticate: Bearer ...`` challenge.

    Examples
    --------
    >>> parse_auth_challenge('Bearer realm="https://auth.docker.io/token",service="registry.docker.io"')
    {'realm': 'https://auth.docker.io/token', 'service': 'registry.docker.io'}
    """
    scheme, _, params = header.partition(" ")
    if scheme.lower() != "bearer":
        return {}
    return dict(_CHALLENGE_PARAM.findall(params))


class DockerRegistrySession:
    """
    Read-only session against one registry endpoint for one repository.

    Parameters
    ----------
    endpoint : str
        Registry base URL, e.g. ``https://registry-1.docker.io``
    remote_name : str
        Repository inside the registry, e.g. ``library/ubuntu``
    session : aiohttp.ClientSession, optional
        HTTP session to reuse
    """

    def __init__(
        self,
        endpoint: str,
        remote_name: str,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.remote_name = remote_name
        self._session = session
        self._owns_session = session is None
        self._token: str | None = None

    async def __aenter__(self) -> "DockerRegistrySession":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=REGISTRY_TIMEOUT_SECONDS)
            )
            self._owns_session = True
        return self._session

    async def _authorize(self, challenge: str) -> None:
        params = parse_auth_challenge(challenge)
        realm = params.pop("realm", None)
        if realm is None:
            raise DockerMetadataError(
                f"Unsupported registry authentication challenge: {challenge}",
                details={"endpoint": self.endpoint},
            )
        params.setdefault("scope", f"repository:{self.remote_name}:pull")
        logger.debug(f"Requesting registry token from {realm}")
        async with self._get_session().get(realm, params=params) as response:
            if response.status != 200:
                raise DockerMetadataError(
                    f"Unable to authenticate with registry: status {response.status}",
                    details={"endpoint": self.endpoint, "realm": realm},
                )
            body = await response.json(content_type=None)
        self._token = body.get("token") or body.get("access_token")

    async def _get(self, path: str, accept: str | None = None) -> bytes:
        url = f"{self.endpoint}/v2/{self.remote_name}/{path}"
        try:
            for attempt in range(2):
                headers = {}
                if accept:
                    headers["Accept"] = accept
                if self._token:
                    headers["Authorization"] = f"Bearer {self._token}"

                async with self._get_session().get(url, headers=headers) as response:
                    if response.status == 401 and attempt == 0:
                        challenge = response.headers.get("WWW-Authenticate", "")
                        await self._authorize(challenge)
                        continue
                    if response.status == 404:
                        raise DockerMetadataError(
                            f"Not found: {self.remote_name}/{path}",
                            details={"url": url, "status": 404},
                        )
                    if response.status != 200:
                        raise DockerMetadataError(
                            f"Registry returned status {response.status} for {url}",
                            details={"url": url, "status": response.status},
                        )
                    return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DockerMetadataError(
                f"Error Connecting to Docker registry:\n{e}",
                details={"url": url},
            ) from e

        raise DockerMetadataError(
            f"Unauthorized to pull {self.remote_name}", details={"url": url, "status": 401}
        )

    async def _get_json(self, path: str, accept: str | None = None) -> Any:
        raw = await self._get(path, accept=accept)
        try:
            return json.loads(raw)
        except ValueError as e:
            raise DockerMetadataError(
                f"Invalid registry response for {path}: {e}", details={"endpoint": self.endpoint}
            ) from e

    async def get_remote_tags(self) -> list[str]:
        """Tags published for the repository."""
        body = await self._get_json("tags/list")
        return list(body.get("tags") or [])

    async def get_image_config(self, tag: str) -> bytes:
        """
        Raw image config JSON for ``tag``.

        Multi-platform indexes are resolved to the linux/amd64 manifest.
        """
        manifest = await self._get_json(f"manifests/{tag}", accept=MANIFEST_ACCEPT)

        if manifest.get("mediaType") in MANIFEST_LIST_TYPES or "manifests" in manifest:
            digest = _select_platform(manifest.get("manifests") or [])
            if digest is None:
                raise DockerMetadataError(
                    f"No linux/amd64 image found for {self.remote_name}:{tag}",
                    details={"endpoint": self.endpoint},
                )
            manifest = await self._get_json(f"manifests/{digest}", accept=MANIFEST_ACCEPT)

        config_digest = (manifest.get("config") or {}).get("digest")
        if not config_digest:
            raise DockerMetadataError(
                f"Manifest for {self.remote_name}:{tag} has no image config",
                details={"endpoint": self.endpoint},
            )
        return await self._get(f"blobs/{config_digest}")


def _select_platform(manifests: list[dict[str, Any]]) -> str | None:
    for entry in manifests:
        platform = entry.get("platform") or {}
        if all(platform.get(key) == value for key, value in DEFAULT_PLATFORM.items()):
            return entry.get("digest")
    return None
