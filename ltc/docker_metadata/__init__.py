"""Docker image reference parsing and registry metadata lookup."""

from .fetcher import DockerMetadataFetcher, ImageMetadata
from .registry import DockerRegistrySession
from .repository_name import ImageReference, format_for_receptor, parse_image_reference

__all__ = [
    "DockerMetadataFetcher",
    "DockerRegistrySession",
    "ImageMetadata",
    "ImageReference",
    "format_for_receptor",
    "parse_image_reference",
]
