"""
Routes package - organized API routes.

This package provides modular route definitions.
Import the combined router for use in main.py.
"""
from fastapi import APIRouter

from .device_sync_routes import router as device_sync_router
from .admin_routes import router as admin_router

# Combined router that includes all sub-routers
combined_router = APIRouter()
combined_router.include_router(device_sync_router)
combined_router.include_router(admin_router)

__all__ = ['combined_router', 'device_sync_router', 'admin_router']
