"""
Receipt Capture backend — FastAPI application entry‑point.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.config import settings
from app.database import init_db
from app.errors import (
    CaptureError,
    DraftValidationError,
    NotFoundError,
    PersistenceError,
    RecordValidationError,
    UploadError,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dirs + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    init_db()
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)
    logger.info("Image storage backend: %s", settings.STORAGE_BACKEND)
    if not settings.ANTHROPIC_API_KEY:
        logger.warning("ANTHROPIC_API_KEY is not set, AI extraction will fall back to manual entry")
    yield
    logger.info("Shutting down")


app = FastAPI(
    title="Receipt Capture",
    description="Receipt photo → AI extraction → reviewed draft → stored receipt",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error mapping ────────────────────────────────────────────────────────
@app.exception_handler(DraftValidationError)
async def draft_validation_handler(request: Request, exc: DraftValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message, "errors": exc.errors})


@app.exception_handler(CaptureError)
async def capture_error_handler(request: Request, exc: CaptureError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(RecordValidationError)
async def record_validation_handler(request: Request, exc: RecordValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(status_code=500, content={"detail": exc.message})


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    return JSONResponse(status_code=502, content={"detail": exc.message})


@app.get("/")
async def root():
    return {"service": "Receipt Capture", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API routers ─────────────────────────────────────────────────
from app.routers.analyze import router as analyze_router  # noqa: E402
from app.routers.receipts import router as receipts_router  # noqa: E402
from app.routers.upload import router as upload_router  # noqa: E402

app.include_router(receipts_router, prefix="/api", tags=["Receipts"])
app.include_router(analyze_router, prefix="/api", tags=["AI Extraction"])
app.include_router(upload_router, prefix="/api", tags=["Upload"])

app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")


def run() -> None:
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
