"""
Main API router that includes all endpoint routers
"""

from fastapi import APIRouter

from estate_kit.api.api_v1.endpoints import auth, delegates, audit, webhooks, subscriptions, database

# Create main API router
api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(delegates.router, prefix="/delegates", tags=["delegates"])
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(database.router, prefix="/database", tags=["database"])
