from episode_service.core.errors import ArtifactNotFound
from episode_service.services.object_store import ArtifactLocation, ObjectStore

SIGNED_URL_TTL_SECONDS = 3600


class PublishResolver:
    """Turns a job id into a presigned link on whichever bucket holds it (primary first)."""

    def __init__(self, storage: ObjectStore, ttl_seconds: int = SIGNED_URL_TTL_SECONDS) -> None:
        self._storage = storage
        self._ttl_seconds = ttl_seconds

    async def resolve(self, job_id: str) -> str:
        location = await self._storage.exists_any(job_id)
        if location == ArtifactLocation.NOT_FOUND:
            raise ArtifactNotFound(f"File {job_id}.mp4 not found")
        return await self._storage.signed_url(location, job_id, self._ttl_seconds)
