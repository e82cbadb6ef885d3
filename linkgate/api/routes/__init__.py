from __future__ import annotations

from linkgate.api.routes.health import router as health_router

__all__ = ["health_router"]
