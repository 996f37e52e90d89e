"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import vehicle_pricing, admin_pricing

router = APIRouter()

# Public pricing lookups and fare quotes
router.include_router(vehicle_pricing.router)

# Admin pricing management
router.include_router(admin_pricing.router)
