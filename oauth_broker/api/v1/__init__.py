"""API route aggregation.

Each sub-router declares its own `prefix` and `tags`.
"""
from fastapi import APIRouter

from .sheets import router as sheets_router
from .oauth import router as oauth_router

# sheets before oauth so /oauth/sheets/* never reaches the /oauth/{provider} routes
ROUTERS = [
    sheets_router,
    oauth_router,
]

api_router = APIRouter()
for r in ROUTERS:
    api_router.include_router(r)

__all__ = ["api_router"]
