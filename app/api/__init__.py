"""
API Routers

All FastAPI routers for the HKCensusConnect backend.
"""

from app.api import census

__all__ = [
    "census",
]
