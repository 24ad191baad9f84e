import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from episode_service.api.routes import router as api_router
from episode_service.core.config import Settings
from episode_service.core.errors import ServiceError
from episode_service.services.object_store import ObjectStore
from episode_service.services.progress_store import ProgressTracker
from episode_service.services.publish import PublishResolver
from episode_service.workers.orchestrator import JobFactory, JobOrchestrator

logger = logging.getLogger(__name__)


def _configure_logging(settings: Settings) -> None:
    # No-op when the root logger already has handlers
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("episode_service").setLevel(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.settings.download_dir.mkdir(parents=True, exist_ok=True)
    await app.state.orchestrator.start()
    try:
        yield
    finally:
        await app.state.orchestrator.stop()


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {problems}"})


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[ObjectStore] = None,
    job_factory: Optional[JobFactory] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    _configure_logging(settings)
    storage = storage or ObjectStore.from_settings(settings)

    extra = {"job_factory": job_factory} if job_factory else {}
    orchestrator = JobOrchestrator(
        storage,
        ProgressTracker(),
        settings.download_dir,
        workers=settings.max_concurrent_conversions,
        max_queued=settings.max_queued_conversions,
        max_finished=settings.max_finished_jobs,
        ffmpeg_binary=settings.ffmpeg_binary,
        **extra,
    )

    app = FastAPI(title="Episode Download API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.storage = storage
    app.state.orchestrator = orchestrator
    app.state.resolver = PublishResolver(storage)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_origin_regex=settings.allowed_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(api_router)
    return app


app = create_app()


def run() -> None:
    """Run the API with uvicorn on HOST:PORT (default 0.0.0.0:8080)."""
    import uvicorn

    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
