"""API routers, mounted under /api by create_app()."""

from fastapi import APIRouter

from jellyradio.api.routers import health, radio

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(radio.router)

__all__ = ["api_router", "health", "radio"]
