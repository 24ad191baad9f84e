from pydantic import BaseModel
from typing import Literal, Optional

JobState = Literal["queued", "running", "uploading", "completed", "failed"]

class DownloadRequest(BaseModel):
    # Both optional so a missing field is reported as 400, not a 422 validation error
    episodeUrl: Optional[str] = None
    fileName: Optional[str] = None

class DownloadResponse(BaseModel):
    success: bool
    message: str

class CheckFileResponse(BaseModel):
    exists: bool

class ProgressResponse(BaseModel):
    progress: float  # 0 -> 100

class SignedUrlResponse(BaseModel):
    success: bool
    url: str

class JobStatusResponse(BaseModel):
    fileName: str
    status: JobState
    progress: float
    error: Optional[str] = None
