"""FastAPI routers package."""

from .booking import router as booking_router
from .collaboration import router as collaboration_router
from .metrics import router as metrics_router

__all__ = [
    "booking_router",
    "collaboration_router",
    "metrics_router",
]
