from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from shortlink_app.api.v1 import links, redirect
from shortlink_app.config import Settings, settings as default_settings
from shortlink_app.dependencies import build_components
from shortlink_app.logging_utils import setup_logging


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI app; components live for the app's lifespan."""
    settings = settings or default_settings
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: a schema failure raises here and aborts startup
        components = build_components(settings)
        components.start()
        app.state.components = components
        yield
        # Shutdown
        components.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="A sequential-code link shortener with click analytics",
        debug=settings.debug,
        lifespan=lifespan
    )

    @app.get("/")
    def read_root():
        """Root endpoint with API information"""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs",
            "redoc": "/redoc"
        }

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "environment": settings.environment}

    ######## Include routers
    app.include_router(links.router, prefix="/api/v1")
    app.include_router(redirect.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
