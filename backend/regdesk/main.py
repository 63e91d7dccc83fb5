"""
Registration Desk API - Main Application Entry Point

Registration and check-in for events:
- Collision-free queue numbers from an atomic per-event counter
- Check-in credentials verifiable from the registration list alone
- Capacity enforcement against a live seat count
- Polling snapshots that keep scanner stations and participant pages in step
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from regdesk.core.config import get_settings
from regdesk.core.exceptions import RegistrationError
from regdesk.core.logging import setup_logging, get_logger
from regdesk.core.metrics import metrics_endpoint
from regdesk.api.router import api_router
from regdesk.api.middleware import RequestLoggingMiddleware
from regdesk.infrastructure.redis_client import RedisClient

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        debounce_strategy=settings.DEBOUNCE_STRATEGY,
    )

    if settings.REDIS_ENABLED:
        if await RedisClient.ping():
            logger.info("redis_ready")
        else:
            logger.warning("redis_unavailable", message="Scan debounce fails open")

    yield

    await RedisClient.close()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event registration, queue numbers and QR check-in",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError):
    if exc.status_code >= 500:
        logger.error("request_rejected", code=exc.code, detail=exc.detail)
    else:
        logger.info("request_rejected", code=exc.code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "redis": await RedisClient.ping(),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
