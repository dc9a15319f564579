from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from postshelf.api.router import api_router
from postshelf.core.config import get_settings
from postshelf.core.telemetry import TelemetryRuntime, configure_logging, setup_telemetry, shutdown_telemetry
from postshelf.services.pipeline import get_pipeline
from postshelf.services.repository import get_repository

settings = get_settings()
configure_logging(settings.log_level, correlate=settings.otel_log_correlation)
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if not settings.zenrows_api_key:
        logger.warning("ZENROWS_API_KEY not set; LinkedIn extraction will fail")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set; Substack extraction is disabled and categorization uses keywords")
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_telemetry(app, _telemetry_runtime)
        # Ensure asyncpg pool shuts down on app teardown.
        await get_repository().close()
        get_pipeline.cache_clear()
        get_repository.cache_clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_telemetry(app, settings)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
