"""Reachability and authorization probes for the receptor and the blob store."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, NamedTuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ltc.common.exceptions import LatticeError, NetworkUnreachableError, UnauthorizedError
from ltc.config import BlobTargetInfo
from ltc.receptor_client import ReceptorClient

logger = logging.getLogger(__name__)

BLOB_PROBE_TIMEOUT_SECONDS = 10


class VerifyResult(NamedTuple):
    """Outcome of a receptor probe."""

    reachable: bool
    authorized: bool
    error: LatticeError | None = None


class TargetVerifier:
    """
    Probe a receptor with one idempotent read.

    Parameters
    ----------
    client_factory : Callable[[str], ReceptorClient], optional
        Builds a client for a receptor URL (default: :class:`ReceptorClient`)
    """

    def __init__(self, client_factory: Callable[[str], ReceptorClient] | None = None):
        self.client_factory = client_factory or ReceptorClient

    async def verify_target(self, receptor_url: str) -> VerifyResult:
        """
        List desired LRPs and classify the outcome.

        Returns
        -------
        VerifyResult
            ``(False, False, err)`` when unreachable, ``(True, False, None)``
            when unauthorized, ``(True, False, err)`` for any other receptor
            error and ``(True, True, None)`` on success
        """
        client = self.client_factory(receptor_url)
        try:
            await client.desired_lrps()
        except NetworkUnreachableError as e:
            logger.info(f"Receptor unreachable: {e}")
            return VerifyResult(False, False, e)
        except UnauthorizedError:
            return VerifyResult(True, False, None)
        except LatticeError as e:
            return VerifyResult(True, False, e)
        finally:
            await client.close()
        return VerifyResult(True, True, None)


def s3_client(blob_target: BlobTargetInfo):
    """Build a path-style S3 client for the blob store at ``blob_target``."""
    return boto3.client(
        "s3",
        endpoint_url=f"http://{blob_target.host}:{blob_target.port}",
        aws_access_key_id=blob_target.access_key,
        aws_secret_access_key=blob_target.secret_key,
        region_name="us-east-1",
        config=BotoConfig(
            signature_version="s3",
            s3={"addressing_style": "path"},
            connect_timeout=BLOB_PROBE_TIMEOUT_SECONDS,
            read_timeout=BLOB_PROBE_TIMEOUT_SECONDS,
            retries={"total_max_attempts": 1},
        ),
    )


class BlobTargetVerifier:
    """
    Probe an S3-compatible blob store by listing its bucket.

    Parameters
    ----------
    client_factory : Callable[[BlobTargetInfo], Any], optional
        Builds the boto3 S3 client used for the probe (default: :func:`s3_client`)
    """

    def __init__(self, client_factory: Callable[[BlobTargetInfo], Any] | None = None):
        self.client_factory = client_factory or s3_client

    async def verify_blob_target(self, blob_target: BlobTargetInfo) -> None:
        """
        Check that the bucket can be listed with the given keys.

        Raises
        ------
        UnauthorizedError
            If the store answers 403
        NetworkUnreachableError
            If the store cannot be reached
        LatticeError
            For any other failed listing
        """
        endpoint = f"{blob_target.host}:{blob_target.port}"
        client = self.client_factory(blob_target)
        try:
            await asyncio.to_thread(client.list_objects, Bucket=blob_target.bucket_name, MaxKeys=1)
        except ClientError as e:
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            details = {"endpoint": endpoint, "code": e.response.get("Error", {}).get("Code")}
            if status == 403:
                raise UnauthorizedError("unauthorized", details=details) from e
            raise LatticeError(f"unexpected status code {status}", details=details) from e
        except BotoCoreError as e:
            logger.info(f"Blob store {endpoint} unreachable: {e}")
            raise NetworkUnreachableError(
                f"blob target is down: {e}", details={"endpoint": endpoint}
            ) from e
