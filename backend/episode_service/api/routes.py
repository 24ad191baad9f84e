from typing import Optional

from fastapi import APIRouter, Request

from episode_service.core.errors import JobNotFound, MissingParameter
from episode_service.core.schemas import (
    CheckFileResponse,
    DownloadRequest,
    DownloadResponse,
    JobStatusResponse,
    ProgressResponse,
    SignedUrlResponse,
)
from episode_service.services.object_store import ArtifactLocation, ObjectStore
from episode_service.services.publish import PublishResolver
from episode_service.workers.orchestrator import JobOrchestrator, StartResult

router = APIRouter()

START_MESSAGES = {
    StartResult.ACCEPTED: "Download started",
    StartResult.ALREADY_EXISTS: "File already exists",
    StartResult.IN_PROGRESS: "Download already in progress",
}


def _storage(request: Request) -> ObjectStore:
    return request.app.state.storage

def _orchestrator(request: Request) -> JobOrchestrator:
    return request.app.state.orchestrator

def _resolver(request: Request) -> PublishResolver:
    return request.app.state.resolver


@router.get("/health")
def health():
    return {"ok": True}

@router.get("/check-file", response_model=CheckFileResponse)
async def check_file(request: Request, fileName: Optional[str] = None):
    if not fileName:
        raise MissingParameter("fileName is required")
    location = await _storage(request).exists_any(fileName)
    return CheckFileResponse(exists=location != ArtifactLocation.NOT_FOUND)

@router.post("/download", response_model=DownloadResponse)
async def start_download(request: Request, body: Optional[DownloadRequest] = None):
    body = body or DownloadRequest()
    result = await _orchestrator(request).start_download(body.episodeUrl, body.fileName)
    return DownloadResponse(success=True, message=START_MESSAGES[result])

@router.get("/progress/{fileName}", response_model=ProgressResponse)
def get_progress(request: Request, fileName: str):
    snapshot = _orchestrator(request).tracker.get(fileName)
    return ProgressResponse(progress=snapshot.percent)

@router.get("/download/{fileName}", response_model=SignedUrlResponse)
async def get_download_url(request: Request, fileName: str):
    url = await _resolver(request).resolve(fileName)
    return SignedUrlResponse(success=True, url=url)

@router.get("/jobs/{fileName}", response_model=JobStatusResponse)
def get_job(request: Request, fileName: str):
    orchestrator = _orchestrator(request)
    record = orchestrator.record(fileName)
    if record is None:
        raise JobNotFound(f"No job recorded for {fileName}")
    return JobStatusResponse(
        fileName=record.job_id,
        status=record.state,
        progress=orchestrator.tracker.get(fileName).percent,
        error=record.error,
    )
