# academic_calendar/main.py - Application entry point
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import traceback
import time

from academic_calendar import __version__
from academic_calendar.core.config import settings
from academic_calendar.core.db import db_manager, get_engine, health_check as db_health_check
from academic_calendar.core.exceptions import CalendarError
from academic_calendar.models.base import Base
from academic_calendar.api.routers import sessions


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting Academic Calendar API...")
    logger.info(f"Environment: {settings.ENV}")
    logger.info(f"Database URL: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'local'}")

    engine = get_engine()

    # Create tables if they don't exist (for development)
    if settings.is_development:
        logger.info("Creating database tables...")
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Error creating tables: {e}")

    yield

    logger.info("Shutting down Academic Calendar API...")
    db_manager.close()


app = FastAPI(
    title=settings.API_TITLE,
    description="Academic sessions, terms and enrollment migration for schools",
    version=__version__,
    docs_url="/docs" if settings.is_development and settings.DEV_SHOW_DOCS else None,
    redoc_url="/redoc" if settings.is_development and settings.DEV_SHOW_DOCS else None,
    lifespan=lifespan
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and timing"""
    start_time = time.time()
    logger.info(f"Incoming {request.method} {request.url.path}")

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Error processing {request.method} {request.url.path}: {e}")
        logger.error(traceback.format_exc())
        raise

    process_time = time.time() - start_time
    logger.info(f"Response {response.status_code} for {request.method} {request.url.path} ({process_time:.3f}s)")
    return response


app.add_middleware(CORSMiddleware, **settings.get_cors_config())


@app.exception_handler(CalendarError)
async def calendar_error_handler(request: Request, exc: CalendarError):
    """Validation, conflict and not-found errors from the calendar services"""
    logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    logger.error(traceback.format_exc())

    if settings.is_development:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "traceback": traceback.format_exc()}
        )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    database = db_health_check()
    return {
        "status": "healthy" if database["status"] == "healthy" else "degraded",
        "environment": settings.ENV,
        "version": __version__,
        "database": database,
    }


app.include_router(sessions.router, prefix="/api/sessions", tags=["Academic Sessions"])
logger.info("Routers registered")


@app.get("/")
def root():
    return {
        "message": settings.API_TITLE,
        "version": __version__,
        "docs_url": "/docs" if app.docs_url else "Documentation disabled",
    }
