import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Register every model module with Base before create_all
from . import (
    models,  # noqa: F401
    models_invoice,  # noqa: F401
    models_messaging,  # noqa: F401
    models_payment,  # noqa: F401
)
from .config import FRONTEND_URL
from .database import Base, engine
from .domain.attendance.router import router as attendance_router
from .domain.classes.router import router as classes_router
from .domain.discounts.router import automation_router as discount_automation_router
from .domain.discounts.router import router as discounts_router
from .domain.enrollments.router import router as enrollments_router
from .domain.families.router import router as families_router
from .domain.families.router import students_router
from .domain.invoices.router import router as invoices_router
from .domain.messaging.router import router as messaging_router
from .domain.payments.router import router as payments_router
from .domain.programs.router import router as programs_router
from .domain.waivers.router import router as waivers_router
from .domain.webhooks.router import router as webhooks_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Database tables ready")
    except Exception as e:
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"❌ Failed to create database tables: {e}")

    try:
        from .rate_limiter import get_redis_client

        get_redis_client()
        logger.info("✅ Redis connection established")
    except Exception as e:
        logger.warning(f"⚠️ Redis connection failed - rate-limited endpoints will answer 503: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Dojo Manager API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Report a missing or malformed Authorization header as 401 instead of 422
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(f"Authentication failed for {request.url.path}: Missing or invalid Authorization header")
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may carry the raw ValueError raised by a validator
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:3000").split(",")
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(families_router)
app.include_router(students_router)
app.include_router(programs_router)
app.include_router(classes_router)
app.include_router(enrollments_router)
app.include_router(attendance_router)
app.include_router(discounts_router)
app.include_router(discount_automation_router)
app.include_router(payments_router)
app.include_router(webhooks_router)
app.include_router(invoices_router)
app.include_router(messaging_router)
app.include_router(waivers_router)


@app.get("/")
def root():
    return {"message": "Dojo Manager API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    try:
        from .rate_limiter import get_redis_client

        redis_client = get_redis_client()

        start_time = time.time()
        redis_client.ping()
        response_time = (time.time() - start_time) * 1000

        info = redis_client.info()
        return {
            "status": "healthy",
            "redis": {
                "connected": True,
                "response_time_ms": round(response_time, 2),
                "version": info.get("redis_version", "unknown"),
                "used_memory_human": info.get("used_memory_human", "unknown"),
                "connected_clients": info.get("connected_clients", 0),
            },
        }
    except Exception as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
