from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from hubz.config.logging import setup_logging
from hubz.config.settings import Settings, settings as default_settings
from hubz.v1.core.exceptions import (
    HubzException,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    hubz_exception_handler,
)
from hubz.v1.healthz import router as health_router
from hubz.v1.runtime import background_runtime


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application hosting the scheduler."""
    settings = settings or default_settings

    # Initialize structured logging
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with background_runtime(
            settings, start_scheduler=settings.scheduler_enabled
        ) as runtime:
            app.state.runtime = runtime
            yield

    app = FastAPI(
        title=settings.app_name,
        description="Background jobs and scheduled notification batches",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add exception handlers
    app.add_exception_handler(HubzException, hubz_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hubz.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )
