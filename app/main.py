"""
Storefront Mail API - FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import engine, Base
from .logging_config import api_logger
from .middleware import SecurityHeadersMiddleware, RequestLoggingMiddleware
from .rate_limiter import RateLimiter
from .responses import register_exception_handlers
from .routes import (
    email_queue_router,
    email_campaigns_router,
    email_analytics_router,
    email_preferences_router,
    email_unsubscribe_router,
    email_webhooks_router,
    orders_router,
)

settings = get_settings()

# Create tables (in production, use Alembic migrations instead)
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    # Startup
    app.state.rate_limiter = RateLimiter(storage_uri=settings.rate_limit_storage_uri)
    app.state.rate_limiter.start()
    api_logger.info("Storefront Mail API started", environment=settings.environment)

    yield  # App is running

    # Shutdown
    app.state.rate_limiter.destroy()
    api_logger.info("Storefront Mail API stopped")


app = FastAPI(
    title="Storefront Mail API",
    description="Email delivery, campaigns and preferences for the storefront",
    version="1.0.0",
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    lifespan=lifespan,
)

register_exception_handlers(app)

# Security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Request logging middleware (only in debug mode)
if settings.debug:
    app.add_middleware(RequestLoggingMiddleware)

# CORS - Properly configured with specific methods
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "resend-signature",
    ],
    expose_headers=[
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "Retry-After",
    ],
    max_age=3600,  # Cache preflight requests for 1 hour
)

# Routes
app.include_router(email_queue_router)
app.include_router(email_campaigns_router)
app.include_router(email_analytics_router)
app.include_router(email_preferences_router)
app.include_router(email_unsubscribe_router)
app.include_router(email_webhooks_router)
app.include_router(orders_router)


@app.get("/api/health")
def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "version": "1.0.0",
    }
