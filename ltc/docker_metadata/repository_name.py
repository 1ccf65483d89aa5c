"""
Docker image reference parsing and formatting for the receptor.

References are split with docker-py's own helpers so that registry hosts,
ports and tags are recognized the same way the docker CLI does. Official
images without a namespace get the ``library/`` prefix.
"""

import re
from typing import NamedTuple

from docker.auth import INDEX_NAME, resolve_repository_name
from docker.errors import InvalidRepository
from docker.utils import parse_repository_tag

from ltc.common.exceptions import MalformedImageReferenceError

DOCKER_SCHEME = "docker"
DEFAULT_TAG = "latest"
OFFICIAL_NAMESPACE = "library"

VALID_NAME_COMPONENT = re.compile(r"^[a-z0-9-_.]+$")


class ImageReference(NamedTuple):
    """
    A parsed image reference.

    Attributes
    ----------
    index_name : str
        Registry host, empty for the default Docker Hub index unless the
        user typed ``docker.io`` explicitly
    remote_name : str
        ``<namespace>/<name>`` inside the registry
    tag : str
        Image tag
    """

    index_name: str
    remote_name: str
    tag: str

    @property
    def repository(self) -> str:
        """Name passed to the registry session (``[host/]namespace/name``)."""
        if self.index_name:
            return f"{self.index_name}/{self.remote_name}"
        return self.remote_name


def parse_image_reference(reference: str) -> ImageReference:
    """
    Split a user-typed image reference.

    Parameters
    ----------
    reference : str
        e.g. ``ubuntu``, ``my/image:1.0``, ``registry.example.com:5000/team/app``

    Returns
    -------
    ImageReference

    Raises
    ------
    MalformedImageReferenceError
        If the reference has a scheme, an invalid registry host, or a
        namespace or name outside ``[a-z0-9-_.]``

    Examples
    --------
    >>> parse_image_reference("ubuntu")
    ImageReference(index_name='', remote_name='library/ubuntu', tag='latest')
    >>> parse_image_reference("my/image:1.0")
    ImageReference(index_name='', remote_name='my/image', tag='1.0')
    """
    if "://" in reference:
        raise MalformedImageReferenceError(
            f"docker URI [{reference}] should not contain scheme",
            details={"reference": reference},
        )

    repository, tag = parse_repository_tag(reference)
    try:
        index_name, remote_name = resolve_repository_name(repository)
    except (InvalidRepository, IndexError) as e:
        raise MalformedImageReferenceError(
            f"Invalid repository name ({repository}): {e}",
            details={"reference": reference},
        ) from e

    if index_name == INDEX_NAME and not repository.startswith(f"{INDEX_NAME}/"):
        index_name = ""

    if "/" not in remote_name:
        remote_name = f"{OFFICIAL_NAMESPACE}/{remote_name}"

    namespace, name = remote_name.split("/", 1)
    if not VALID_NAME_COMPONENT.match(namespace):
        raise MalformedImageReferenceError(
            f"Invalid namespace name ({namespace}), only [a-z0-9-_.] are allowed",
            details={"reference": reference},
        )
    for component in name.split("/"):
        if not VALID_NAME_COMPONENT.match(component):
            raise MalformedImageReferenceError(
                f"Invalid repository name ({component}), only [a-z0-9-_.] are allowed",
                details={"reference": reference},
            )

    return ImageReference(index_name, remote_name, tag or DEFAULT_TAG)


def format_for_receptor(reference: str) -> str:
    """
    Convert an image reference into a receptor rootfs URL.

    Examples
    --------
    >>> format_for_receptor("my/image")
    'docker:///my/image#latest'
    >>> format_for_receptor("ubuntu:14.04")
    'docker:///library/ubuntu#14.04'
    """
    parsed = parse_image_reference(reference)
    return f"{DOCKER_SCHEME}://{parsed.index_name}/{parsed.remote_name}#{parsed.tag}"
