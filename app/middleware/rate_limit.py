"""
Rate Limiting Middleware

Every density request can trigger a Gemini call, so the endpoints that
fetch densities are limited per client IP using slowapi's in-memory storage.
"""

import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# Key function extracts client identifier (IP address)
limiter = Limiter(key_func=get_remote_address)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """429 with the limit that was hit; the dashboard keeps its current map."""
    logger.warning(f"Rate limit hit by {get_remote_address(request)} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Too many density requests. Please wait before switching metrics again.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(60)},
    )
