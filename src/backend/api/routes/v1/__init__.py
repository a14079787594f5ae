"""
API v1 Router - Aggregates all v1 endpoints.

Usage in main.py:
    from api.routes.v1 import router as v1_router
    app.include_router(v1_router, prefix="/api/v1")
"""

from fastapi import APIRouter

from api.routes.v1 import context, eliza, health, sessions

# Create the v1 API router
router = APIRouter()

# Health endpoints
router.include_router(
    health.router,
    tags=["Health"],
)

# Character-building chat (SSE)
router.include_router(
    eliza.router,
    prefix="/eliza",
    tags=["Eliza"],
)

# Session inspection
router.include_router(
    sessions.router,
    prefix="/sessions",
    tags=["Sessions"],
)

# Context store (vector similarity)
router.include_router(
    context.router,
    tags=["Context"],
)

__all__ = ["router"]
