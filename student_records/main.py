from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from student_records.core.config import Settings, settings as default_settings
from student_records.core.database import SessionFactory
from student_records.core.handlers import register_exception_handlers
from student_records.core.logging import setup_logging
from student_records.api.v1.router import api_router


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI app. The session factory is opened when the app
    starts and closed when it shuts down.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = setup_logging(settings.LOG_LEVEL)
        logger.info(f"Starting {settings.PROJECT_NAME} v{settings.APP_VERSION}")
        app.state.session_factory = SessionFactory.from_settings(settings)
        try:
            yield
        finally:
            app.state.session_factory.close()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan
    )
    register_exception_handlers(app)

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    def root():
        """
        Health check endpoint
        """
        return {
            "message": "Welcome to Student Records API",
            "docs": "/docs",
            "version": settings.APP_VERSION
        }

    return app


app = create_app()
