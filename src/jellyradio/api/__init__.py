"""HTTP API for JellyRadio.

Structure:
- app.py: create_app() factory
- routers/: endpoints (radio, health), mounted under /api
- schemas.py: Pydantic request/response models
- dependencies.py: dependency injection (clients, guard, use case)
- exception_handlers.py: domain exception to HTTP mapping
"""

from jellyradio.api.app import create_app

__all__ = ["create_app"]
