import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .domain.billing import router as billing_router
from .domain.occupancy import router as occupancy_router
from .domain.seasons import router as seasons_router
from .domain.selection import router as selection_router
from .domain.snapshots import router as snapshots_router
from .domain.splits import router as splits_router
from .errors import CabinBuddyError
from .security_middleware import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Third-party HTTP and storage clients are noisy at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("botocore").setLevel(logging.WARNING)

SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Cabin Buddy API starting")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Database schema ready")
    except Exception as e:
        # Concurrent uvicorn workers race on create_all
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database schema already created by a sibling worker")
        else:
            logger.error(f"❌ Schema creation failed: {e}")
    yield
    logger.info("👋 Cabin Buddy API stopped")


app = FastAPI(title="Cabin Buddy API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(CabinBuddyError)
async def cabin_buddy_exception_handler(request: Request, exc: CabinBuddyError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} - {exc.code}: {exc.message}")
    else:
        logger.warning(f"⚠️ {request.method} {request.url.path} - {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """A missing bearer token surfaces as a validation error; report it as 401"""
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"⚠️ {request.url.path} called without a usable Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "success": False,
                    "error": "Not authenticated. Send a Firebase ID token as a Bearer token.",
                    "code": "not_authenticated",
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"❌ Unhandled error on {request.method} {request.url.path}: {e}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(
        SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"]
    )
    logger.info("🔒 Security headers middleware installed")
else:
    logger.warning("⚠️ Security headers are off (SECURITY_HEADERS_ENABLED=false)")

logger.info(f"CORS origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

app.include_router(billing_router)
app.include_router(occupancy_router)
app.include_router(splits_router)
app.include_router(seasons_router)
app.include_router(snapshots_router)
app.include_router(selection_router)


@app.get("/")
def root():
    return {"message": "Cabin Buddy API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
