"""
Route modules. ``api_router`` is mounted under API_PREFIX; the fallback
router must be included last.
"""

from fastapi import APIRouter

from api.routes.csrf import router as csrf_router
from api.routes.fallback import site_fallback_router
from api.routes.health import router as health_router

api_router = APIRouter()
api_router.include_router(csrf_router)
api_router.include_router(health_router)

__all__ = ["api_router", "site_fallback_router"]
