import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from app.config import get_settings

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)
from app.api import census

# Initialize settings early for Sentry
settings = get_settings()

# Initialize Sentry (must be before FastAPI app creation for proper error capture)
if settings.sentry_dsn:
    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
            ],
            traces_sample_rate=1.0 if settings.debug else 0.2,
            # Profiles carry personal data; keep it out of error reports
            send_default_pii=False,
        )
        logger.info(f"Sentry initialized for environment: {settings.sentry_environment}")
    except Exception as e:
        logger.warning(f"Sentry initialization failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(
        f"Map settings: distribution={settings.distribution_policy}, "
        f"colors={settings.color_scheme}, boundaries={settings.boundary_geojson_path}"
    )

    # Build the density source up front so a bad Gemini config shows at startup
    from app.services.density_source import get_density_source
    source = get_density_source()
    logger.info(f"District densities served by: {source.name}")

    yield
    # Shutdown
    logger.info("Shutting down...")


app = FastAPI(
    title="HKCensusConnect API",
    description="Backend API for HKCensusConnect - Hong Kong census profile similarity maps by district and TPU",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting setup
from slowapi.errors import RateLimitExceeded
from app.middleware.rate_limit import limiter, rate_limit_exceeded_handler

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# CORS middleware - origins from environment variable
cors_origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
logger.info(f"CORS Origins configured: {cors_origins}")

CORS_ALLOWED_HEADERS = [
    "Accept",
    "Accept-Language",
    "Content-Type",
    "Origin",
    "X-Requested-With",
]

CORS_EXPOSE_HEADERS = [
    "Content-Length",
    "Content-Type",
    "Retry-After",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=CORS_ALLOWED_HEADERS,
    expose_headers=CORS_EXPOSE_HEADERS,
    max_age=600,
)

# Include routers
app.include_router(census.router, prefix="/api/census", tags=["Census"])


@app.get("/", tags=["Health"])
@app.get("/health", tags=["Health"])
@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint - available at /, /health, and /api/health"""
    return {"status": "healthy", "app": settings.app_name}
