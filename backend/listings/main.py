from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .config import settings
from .database import SessionLocal
from .routes.import_batches import router as import_batches_router
from .routes.imports import router as imports_router
from .routes.reviews import router as reviews_router
from .routes.sitemap import router as sitemap_router
from .routes.sources import router as sources_router
from .routes.validation import router as validation_router
from .schemas import HealthResponse
from .services.review_analyzers import close_shared_review_analyzer
from .telemetry.logging_utils import configure_logging
from .telemetry.middleware import TelemetryMiddleware

configure_logging(settings.log_level, settings.perf_log_level)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    close_shared_review_analyzer()


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TelemetryMiddleware)

app.include_router(imports_router, prefix="/api")
app.include_router(import_batches_router, prefix="/api")
app.include_router(validation_router, prefix="/api")
app.include_router(sources_router, prefix="/api")
app.include_router(reviews_router, prefix="/api")
app.include_router(sitemap_router, prefix="/api")


@app.get("/health", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    with SessionLocal() as session:
        session.execute(text("SELECT 1"))
    return HealthResponse(status="ok", environment=settings.environment)
