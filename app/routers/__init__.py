"""API routers for the CrimeWatch backend."""
from fastapi import APIRouter

from . import admin, health, reports


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(reports.router)
    api_router.include_router(admin.router)
    return api_router
