"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import trips, invoices

router = APIRouter()

router.include_router(trips.router)
router.include_router(invoices.router)
