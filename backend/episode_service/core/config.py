import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value if value else None


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    return int(raw)


def _parse_allowed_origins(raw: Optional[str]) -> List[str]:
    if not raw or not raw.strip():
        return ["http://localhost:3000"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    """
    Process configuration, read once from the environment (and `.env`).

    Nothing is validated up front: storage credentials and bucket names are
    only checked for presence when the storage client is first needed.
    """
    r2_endpoint: Optional[str] = None
    r2_public_endpoint: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_region: str = "auto"
    primary_bucket: Optional[str] = None
    user_bucket: Optional[str] = None

    download_dir: Path = Path("./data/downloads")
    ffmpeg_binary: str = "ffmpeg"
    max_concurrent_conversions: int = 4
    max_queued_conversions: int = 16
    max_finished_jobs: int = 256

    allowed_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    allowed_origin_regex: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            r2_endpoint=_env("R2_ENDPOINT"),
            r2_public_endpoint=_env("R2_PUBLIC_ENDPOINT"),
            r2_access_key_id=_env("R2_ACCESS_KEY_ID"),
            r2_secret_access_key=_env("R2_SECRET_ACCESS_KEY"),
            r2_region=_env("R2_REGION") or "auto",
            primary_bucket=_env("R2_PRIMARY_BUCKET"),
            user_bucket=_env("R2_USER_BUCKET"),
            download_dir=Path(_env("DOWNLOAD_DIR") or "./data/downloads").resolve(),
            ffmpeg_binary=_env("FFMPEG_BINARY") or "ffmpeg",
            max_concurrent_conversions=_env_int("MAX_CONCURRENT_CONVERSIONS", 4),
            max_queued_conversions=_env_int("MAX_QUEUED_CONVERSIONS", 16),
            max_finished_jobs=_env_int("MAX_FINISHED_JOBS", 256),
            allowed_origins=_parse_allowed_origins(os.getenv("ALLOWED_ORIGINS", "")),
            allowed_origin_regex=_env("ALLOWED_ORIGIN_REGEX"),
            host=_env("HOST") or "0.0.0.0",
            port=_env_int("PORT", 8080),
            log_level=(_env("LOG_LEVEL") or "INFO").upper(),
        )
