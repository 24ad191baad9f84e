import asyncio
import logging
from enum import Enum
from typing import BinaryIO, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from episode_service.core.config import Settings
from episode_service.core.errors import SignedUrlError, StorageNotConfigured, UploadError

logger = logging.getLogger(__name__)


class ArtifactLocation(str, Enum):
    PRIMARY = "primary"
    USER = "user"
    NOT_FOUND = "not_found"


def object_key(job_id: str) -> str:
    return f"{job_id}.mp4"


class ObjectStore:
    """
    Existence checks, uploads and presigned links over the primary and user
    buckets of one S3-compatible endpoint (Cloudflare R2 by default).

    `exists` reports False for any transport or auth failure, so a missing
    object and an unreachable bucket look the same to callers. Uploads and
    signing fail loudly.
    """

    def __init__(
        self,
        buckets: Dict[ArtifactLocation, Optional[str]],
        client=None,
        presign_client=None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._buckets = buckets
        self._client = client
        self._presign_client = presign_client
        self._settings = settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStore":
        return cls(
            buckets={
                ArtifactLocation.PRIMARY: settings.primary_bucket,
                ArtifactLocation.USER: settings.user_bucket,
            },
            settings=settings,
        )

    def _enabled(self) -> bool:
        s = self._settings
        return s is not None and all([s.r2_endpoint, s.r2_access_key_id, s.r2_secret_access_key])

    def _make_client(self, endpoint_url: Optional[str]):
        s = self._settings
        return boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=s.r2_access_key_id,
            aws_secret_access_key=s.r2_secret_access_key,
            region_name=s.r2_region,
            config=Config(signature_version="s3v4"),
        )

    def _get_client(self):
        if self._client is None:
            if not self._enabled():
                raise StorageNotConfigured("R2 storage is not configured.")
            self._client = self._make_client(self._settings.r2_endpoint)
        return self._client

    def _get_presign_client(self):
        # Presigned links must carry the host the caller can reach
        if self._presign_client is None:
            if self._settings is not None and self._settings.r2_public_endpoint:
                if not self._enabled():
                    raise StorageNotConfigured("R2 storage is not configured.")
                self._presign_client = self._make_client(self._settings.r2_public_endpoint)
            else:
                self._presign_client = self._get_client()
        return self._presign_client

    def _bucket(self, location: ArtifactLocation) -> str:
        if location == ArtifactLocation.NOT_FOUND:
            raise ValueError("NOT_FOUND is not a storage location")
        bucket = self._buckets.get(location)
        if not bucket:
            raise StorageNotConfigured(f"No bucket configured for the {location.value} location.")
        return bucket

    def _head(self, location: ArtifactLocation, job_id: str) -> bool:
        bucket = self._bucket(location)
        client = self._get_client()
        try:
            client.head_object(Bucket=bucket, Key=object_key(job_id))
        except (ClientError, BotoCoreError) as exc:
            logger.debug("head_object %s/%s failed: %s", bucket, object_key(job_id), exc)
            return False
        return True

    async def exists(self, location: ArtifactLocation, job_id: str) -> bool:
        return await asyncio.to_thread(self._head, location, job_id)

    async def exists_any(self, job_id: str) -> ArtifactLocation:
        # Primary first: it wins when both buckets hold the object
        for location in (ArtifactLocation.PRIMARY, ArtifactLocation.USER):
            if await self.exists(location, job_id):
                return location
        return ArtifactLocation.NOT_FOUND

    def _upload(self, location: ArtifactLocation, job_id: str, fileobj: BinaryIO, content_type: str) -> None:
        bucket = self._bucket(location)
        client = self._get_client()
        try:
            client.upload_fileobj(
                fileobj,
                bucket,
                object_key(job_id),
                ExtraArgs={"ContentType": content_type},
            )
        except (ClientError, BotoCoreError) as exc:
            raise UploadError(f"Upload of {object_key(job_id)} to {bucket} failed: {exc}") from exc

    async def upload(
        self,
        location: ArtifactLocation,
        job_id: str,
        fileobj: BinaryIO,
        content_type: str = "video/mp4",
    ) -> None:
        await asyncio.to_thread(self._upload, location, job_id, fileobj, content_type)

    def _sign(self, location: ArtifactLocation, job_id: str, ttl_seconds: int) -> str:
        bucket = self._bucket(location)
        client = self._get_presign_client()
        try:
            return client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": object_key(job_id)},
                ExpiresIn=ttl_seconds,
                HttpMethod="GET",
            )
        except (ClientError, BotoCoreError) as exc:
            raise SignedUrlError(f"Could not sign a link for {object_key(job_id)}: {exc}") from exc

    async def signed_url(self, location: ArtifactLocation, job_id: str, ttl_seconds: int) -> str:
        return await asyncio.to_thread(self._sign, location, job_id, ttl_seconds)
