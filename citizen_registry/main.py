"""FastAPI application initialization."""

from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from citizen_registry.api.admin import router as admin_router
from citizen_registry.api.auth import router as auth_router
from citizen_registry.api.errors import register_exception_handlers
from citizen_registry.api.middleware import CorrelationIdMiddleware
from citizen_registry.api.registration import router as registration_router
from citizen_registry.api.routes import router
from citizen_registry.api.validator import router as validator_router
from citizen_registry.config import get_settings
from citizen_registry.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    # The registry cannot serve any request without its database
    from citizen_registry.database import close_database, init_database, run_migrations

    await init_database()
    await run_migrations()
    logger.info("database_initialized")

    from citizen_registry.services.user_service import UserService

    await UserService().ensure_default_admin(
        email=settings.default_admin_email,
        password=settings.default_admin_password,
        name=settings.default_admin_name,
    )

    # Initialize Redis connection
    from citizen_registry.services.redis_service import close_redis, get_redis

    redis_client = await get_redis()
    if redis_client is None:
        logger.warning(
            "redis_initialization_failed",
            note="Continuing without Redis - rate limiting will be unavailable",
        )
    else:
        logger.info("redis_initialized")

    logger.info("application_started", log_level=settings.log_level)

    yield

    # Shutdown
    await close_database()
    await close_redis()

    logger.info("application_shutdown")


app = FastAPI(
    title="Citizen Registry - Identity Verification API",
    description="Citizen registration, verification review and reapplication",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

# CORS middleware for browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

# Include API routes
app.include_router(auth_router)
app.include_router(registration_router)
app.include_router(validator_router)
app.include_router(admin_router)
app.include_router(router)
