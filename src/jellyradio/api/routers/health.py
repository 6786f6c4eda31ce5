"""Health check endpoint."""

from fastapi import APIRouter

from jellyradio import __version__
from jellyradio.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness probe."""
    return HealthResponse(status="ok", version=__version__)
