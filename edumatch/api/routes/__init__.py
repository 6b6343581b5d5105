"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from edumatch.api.routes.explore_routes import router as explore_router
from edumatch.api.routes.institution_routes import router as institution_router
from edumatch.api.routes.post_routes import router as post_router
from edumatch.api.routes.notification_routes import router as notification_router
from edumatch.api.routes.support_routes import router as support_router
from edumatch.api.routes.file_routes import router as file_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(explore_router)
api_router.include_router(institution_router)
api_router.include_router(post_router)
api_router.include_router(notification_router)
api_router.include_router(support_router)
api_router.include_router(file_router)
