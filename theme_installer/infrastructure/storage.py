"""
Object storage implementations of the DurableStore port.

Which implementation is used is decided once, when the container is built:
``S3ObjectStore`` when a bucket and tenant are configured, otherwise
``UnavailableStore``, which fails every write instead of skipping it.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

from ..application.domain import ArtifactClass, DurableStore
from ..application.exceptions import StorageUnavailable

_CACHE_CONTROL = "no-store"


def strip_leading_slash(key: str) -> str:
    return key[1:] if key.startswith("/") else key


class _KeyBuilder:
    """Builds tenant-prefixed keys shared by both store implementations."""

    def __init__(self, tenant_id: Optional[str]):
        self.tenant_id = tenant_id or ""
        self.logger = logging.getLogger(self.__class__.__name__)

    def key_for(self, artifact_class: ArtifactClass, name: str) -> str:
        return strip_leading_slash(
            f"{self.tenant_id}/{artifact_class.segment}/{name}"
        )


class S3ObjectStore(_KeyBuilder, DurableStore):
    """An adapter that implements the DurableStore port with boto3."""

    def __init__(self, client: Any, bucket: str, tenant_id: str):
        """
        Args:
            client: A boto3 S3 client.
            bucket: The bucket every artifact is written to.
            tenant_id: The installation identifier prefixing every key.
        """
        super().__init__(tenant_id)
        self.client = client
        self.bucket = bucket

    def _blocking_put(self, key: str, source: Path, acl: str):
        with open(source, "rb") as body:
            self.client.put_object(
                ACL=acl,
                Body=body,
                Bucket=self.bucket,
                CacheControl=_CACHE_CONTROL,
                Key=key,
            )

    async def put(
        self,
        key: str,
        source: Path,
        artifact_class: ArtifactClass = ArtifactClass.THEME,
    ) -> None:
        """
        Upload ``source`` under ``key`` with the ACL of its artifact class.

        Theme archives are private; routing configuration is public-read.
        Backend errors propagate unchanged.
        """
        key = strip_leading_slash(key)
        self.logger.info(
            f"Uploading {source.name} to s3://{self.bucket}/{key} "
            f"({artifact_class.acl})"
        )
        await asyncio.to_thread(self._blocking_put, key, source, artifact_class.acl)

    async def delete(self, key: str) -> None:
        key = strip_leading_slash(key)
        self.logger.info(f"Deleting s3://{self.bucket}/{key}")
        await asyncio.to_thread(
            self.client.delete_object, Bucket=self.bucket, Key=key
        )


class UnavailableStore(_KeyBuilder, DurableStore):
    """Stands in for an unconfigured backend; every operation fails."""

    async def put(
        self,
        key: str,
        source: Path,
        artifact_class: ArtifactClass = ArtifactClass.THEME,
    ) -> None:
        self.logger.error(f"Durable storage is not configured, cannot store {key}")
        raise StorageUnavailable("Could not upload theme to S3")

    async def delete(self, key: str) -> None:
        self.logger.error(f"Durable storage is not configured, cannot delete {key}")
        raise StorageUnavailable("Could not delete theme in S3")
