from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import time
import logging

from .api.v1.appointments import router as appointments_router
from .api.v1.auth import router as auth_router
from .api.v1.billing import router as billing_router
from .api.v1.clinics import router as clinics_router
from .api.v1.notifications import router as notifications_router
from .api.v1.receptionist import router as receptionist_router
from .api.v1.specialities import router as specialities_router
from .api.v1.super_admin import router as super_admin_router
from .core.config import settings
from .core.database import init_db
from .core.exceptions import AppError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Multi-clinic scheduling, billing and notifications",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Middleware setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Only add TrustedHostMiddleware in production, not in testing
if not settings.TESTING:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"]
    )


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Time: {process_time:.4f}s"
    )

    return response


def error_body(request: Request, status_code: int, error: str, message: str) -> dict:
    return {
        "statusCode": status_code,
        "error": error,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": str(request.url.path),
    }


# Exception handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.title, exc.message),
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.url.path}: {str(exc.orig)}")
    if "foreign key" in str(exc.orig).lower():
        return JSONResponse(
            status_code=400,
            content=error_body(request, 400, "Validation Error", "A referenced record does not exist"),
        )
    return JSONResponse(
        status_code=409,
        content=error_body(request, 409, "Conflict", "A record with this value already exists"),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content=error_body(request, 500, "Internal Server Error", "An unexpected error occurred"),
    )


# Include routers
for router in (
    auth_router,
    clinics_router,
    specialities_router,
    appointments_router,
    receptionist_router,
    billing_router,
    notifications_router,
    super_admin_router,
):
    app.include_router(router, prefix="/api/v1")


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info("Starting Multi-Clinic Healthcare System...")

    db_url = settings.get_database_url
    db_type = "PostgreSQL" if "postgresql" in db_url else "SQLite" if "sqlite" in db_url else "Unknown"
    logger.info(f"Using {db_type} database")

    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise

    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Multi-Clinic Healthcare System...")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.VERSION
    }


@app.get("/")
async def root():
    return {
        "message": "Welcome to the Multi-Clinic Healthcare System API",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "default_timezone": settings.DEFAULT_TIMEZONE,
        "endpoints": {
            "authentication": "/api/v1/auth",
            "clinics": "/api/v1/clinics",
            "specialities": "/api/v1/specialities",
            "appointments": "/api/v1/appointments",
            "receptionist": "/api/v1/receptionist",
            "bills": "/api/v1/bills",
            "notifications": "/api/v1/notifications",
            "super_admin": "/api/v1/super-admin",
            "docs": "/docs",
            "openapi": "/api/v1/openapi.json"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "multiclinic.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
