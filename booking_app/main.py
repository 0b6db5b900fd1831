import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import models  # noqa: F401 - registers tables on Base
from .cache import cache
from .config import ALLOWED_ORIGINS
from .database import Base, engine, get_db
from .domain.availability.router import router as availability_router
from .domain.employees.router import router as employees_router
from .domain.employees.router import service_router as service_employees_router
from .domain.forms.router import router as forms_router
from .errors import AppError

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
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    status = cache.status()
    if status.get("available"):
        logger.info("Redis connection established")
    elif status.get("enabled"):
        logger.warning(f"Redis unavailable - availability cache will operate in fail-open mode: {status.get('error')}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Booking Flow API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} - {exc.code}: {exc.message}")
    else:
        logger.warning(f"⚠️ {request.method} {request.url.path} - {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={"error": "Not authenticated", "code": "UNAUTHENTICATED"},
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={
            "error": "Invalid request",
            "code": "INVALID_REQUEST",
            "details": {"issues": jsonable_errors(exc)},
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "message": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"❌ {request.method} {request.url.path} - Unhandled error: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL_ERROR"})


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(forms_router)
app.include_router(employees_router)
app.include_router(service_employees_router)
app.include_router(availability_router)


@app.get("/")
def root():
    return {"message": "Booking Flow API is running"}


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Database connectivity plus Redis cache status"""
    try:
        db.execute(text("SELECT 1"))
        database = {"connected": True}
    except Exception as e:
        logger.error(f"❌ Health check database failure: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": {"connected": False, "error": str(e)}},
        )

    return {"status": "healthy", "database": database, "redis": cache.status()}
