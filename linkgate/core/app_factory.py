from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from fastapi import FastAPI

from linkgate.api.routes import health_router
from linkgate.core.config import settings
from linkgate.core.exception_handlers import setup_exception_handlers
from linkgate.core.logging import configure_logging
from linkgate.core.middleware import rate_limit_middleware, request_id_middleware
from linkgate.core.openapi import apply_openapi_customizations
from linkgate.core.rate_limit import get_rate_limiter


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.

    Raises:
        ConfigurationAppError: If the rate limit settings are invalid.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    # Fail at startup rather than on the first request
    if settings.rate_limit.enabled:
        get_rate_limiter()

    app = FastAPI(
        title=settings.app.name,
        description=(
            "Request admission layer of the bookmark manager. Every request is "
            "classified (auth, api, general), attributed to a client and counted "
            "in a fixed window; exhausted quotas receive HTTP 429. Responses "
            "carry X-RateLimit-Limit, X-RateLimit-Remaining and X-RateLimit-Reset."
        ),
        version=settings.app.version,
        debug=settings.app.debug,
    )

    # Middleware: the last registered wraps the others, so request ids are
    # assigned before admission and 429 responses carry them too.
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router, prefix="/api")

    apply_openapi_customizations(app)

    return app
