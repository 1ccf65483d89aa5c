"""Resolve an image reference into the metadata needed to run it."""

import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ltc.common.exceptions import DockerMetadataError
from ltc.common.models import PortConfig
from ltc.docker_metadata.registry import DockerRegistrySession, registry_endpoints
from ltc.docker_metadata.repository_name import parse_image_reference

logger = logging.getLogger(__name__)


class ContainerConfig(BaseModel):
    """The subset of a docker image's container config the CLI reads."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    working_dir: str = Field("", alias="WorkingDir")
    entrypoint: list[str] | None = Field(None, alias="Entrypoint")
    cmd: list[str] | None = Field(None, alias="Cmd")
    exposed_ports: dict[str, Any] | None = Field(None, alias="ExposedPorts")


class ImageJSON(BaseModel):
    """Image config document served by the registry."""

    model_config = ConfigDict(extra="ignore")

    config: ContainerConfig | None = None
    container_config: ContainerConfig | None = None


class ImageMetadata(BaseModel):
    """
    What ``ltc create`` needs from an image.

    Parameters
    ----------
    working_dir : str
        Image working directory
    start_command : list[str]
        ``Entrypoint`` followed by ``Cmd``
    ports : PortConfig
        TCP exposed ports ascending; the smallest is monitored
    """

    working_dir: str = ""
    start_command: list[str] = Field(default_factory=list)
    ports: PortConfig = Field(default_factory=PortConfig)


def sort_ports(exposed_ports: dict[str, Any] | None) -> list[int]:
    """
    TCP ports of an ``ExposedPorts`` map, ascending.

    Examples
    --------
    >>> sort_ports({"8080/tcp": {}, "53/udp": {}, "443/tcp": {}, "80": {}})
    [80, 443, 8080]
    """
    ports = []
    for key in exposed_ports or {}:
        port, _, proto = key.partition("/")
        if (proto or "tcp").lower() != "tcp":
            continue
        try:
            ports.append(int(port))
        except ValueError:
            logger.debug(f"Ignoring unparseable exposed port {key!r}")
    return sorted(ports)


def parse_image_json(raw: bytes | str) -> ImageMetadata:
    """
    Build :class:`ImageMetadata` from a raw image config document.

    Raises
    ------
    DockerMetadataError
        If the document is not valid JSON or has no ``config`` section
    """
    try:
        image = ImageJSON.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise DockerMetadataError(
            f"Error parsing remote image json for specified docker image:\n{e}"
        ) from e

    if image.config is None:
        raise DockerMetadataError("Parsing start command failed")

    config = image.config
    exposed = config.exposed_ports
    if exposed is None and image.container_config is not None:
        exposed = image.container_config.exposed_ports

    ports = sort_ports(exposed)
    return ImageMetadata(
        working_dir=config.working_dir,
        start_command=[*(config.entrypoint or []), *(config.cmd or [])],
        ports=PortConfig(monitored=ports[0] if ports else 0, exposed=ports),
    )


class DockerMetadataFetcher:
    """
    Fetch image metadata from the image's registry.

    Parameters
    ----------
    session_factory : Callable[[str, str], DockerRegistrySession], optional
        Builds a registry session from ``(endpoint, remote_name)``

    Examples
    --------
    >>> async def example():
    ...     metadata = await DockerMetadataFetcher().fetch_metadata("cloudfoundry/lattice-app")
    ...     print(metadata.ports.monitored)
    """

    def __init__(
        self,
        session_factory: Callable[[str, str], DockerRegistrySession] | None = None,
    ) -> None:
        self.session_factory = session_factory or DockerRegistrySession

    async def fetch_metadata(self, image_reference: str) -> ImageMetadata:
        """
        Resolve ``image_reference`` (``[host/]repo[:tag]``).

        Registry endpoints are tried in order and the first that answers
        wins. An endpoint that fails listing tags or serving the image
        config is skipped. An unknown tag is not retried on later endpoints.

        Raises
        ------
        MalformedImageReferenceError
            If the reference cannot be parsed
        DockerMetadataError
            If no endpoint answers, the tag does not exist or the image
            config is unusable
        """
        reference = parse_image_reference(image_reference)
        last_error: DockerMetadataError | None = None

        for endpoint in registry_endpoints(reference.index_name):
            logger.debug(f"Fetching metadata for {reference.repository} from {endpoint}")
            async with self.session_factory(endpoint, reference.remote_name) as session:
                try:
                    tags = await session.get_remote_tags()
                except DockerMetadataError as e:
                    logger.info(f"Registry endpoint {endpoint} failed: {e}")
                    last_error = e
                    continue

                if reference.tag not in tags:
                    raise DockerMetadataError(
                        f"Unknown tag: {reference.remote_name}:{reference.tag}",
                        details={"reference": image_reference},
                    )

                try:
                    raw = await session.get_image_config(reference.tag)
                except DockerMetadataError as e:
                    logger.info(f"Registry endpoint {endpoint} failed fetching the image config: {e}")
                    last_error = e
                    continue
            return parse_image_json(raw)

        raise last_error or DockerMetadataError(
            f"No registry endpoint for {reference.repository}",
            details={"reference": image_reference},
        )
