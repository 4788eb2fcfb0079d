"""API router aggregation."""

from fastapi import APIRouter

from claimlink.api.admin import router as admin_router
from claimlink.api.claims import router as claims_router
from claimlink.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router)
# Self-service matching and claims
api_router.include_router(claims_router)
# Admin override and audit log
api_router.include_router(admin_router)
