"""
API Version 1 - Route definitions.
"""
from fastapi import APIRouter

from .dashboard import router as dashboard_router
from .commands import router as commands_router
from .configuration import router as configuration_router

# Create main v1 router
api_router = APIRouter(prefix="/v1")

# Include all sub-routers
api_router.include_router(dashboard_router)
api_router.include_router(commands_router)
api_router.include_router(configuration_router)

__all__ = ['api_router']
