from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from loginguard.config import settings
from loginguard.database import (
    async_session,
    build_session_factory,
    close_db,
    engine as default_engine,
    init_db,
)
from loginguard.dependencies import get_db
from loginguard.middlewares.logging_middleware import LoggingMiddleware
from loginguard.routes import router as api_router
from loginguard.services.geolocation import GeoLocationResolver
from loginguard.services.login_recorder import LoginAttemptRecorder
from loginguard.services.risk_scorer import RiskScorer
from loginguard.services.threshold_config import ThresholdConfig
from loginguard.utils.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


def create_application(
    engine: Optional[AsyncEngine] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    geo_resolver: Optional[GeoLocationResolver] = None,
) -> FastAPI:
    """Create the FastAPI application"""
    bind = engine or default_engine
    if session_factory is None:
        session_factory = async_session if engine is None else build_session_factory(bind)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build the engine services once per process and hang them on app.state.
        """
        configure_logging()
        logger.info("Application starting up...")

        await init_db(bind)

        resolver = geo_resolver or GeoLocationResolver.from_settings()
        threshold_config = ThresholdConfig(session_factory)
        await threshold_config.load()

        app.state.session_factory = session_factory
        app.state.geo_resolver = resolver
        app.state.risk_scorer = RiskScorer()
        app.state.threshold_config = threshold_config
        app.state.login_recorder = LoginAttemptRecorder(
            session_factory=session_factory,
            geo_resolver=resolver,
            risk_scorer=app.state.risk_scorer,
        )

        yield

        logger.info("Application shutting down...")
        await resolver.aclose()
        await close_db(bind)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description=settings.PROJECT_DESCRIPTION,
        version=settings.VERSION,
        docs_url=settings.DOCS_URL,
        redoc_url=None,
        lifespan=lifespan,
    )

    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.BACKEND_CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "OPTIONS"],
            allow_headers=[
                "Content-Type",
                "Authorization",
                "Accept",
                "X-Requested-With",
                "Origin",
            ],
            max_age=600,
        )

    # Logging middleware
    app.add_middleware(LoggingMiddleware)

    # Include API routes
    app.include_router(api_router, prefix=settings.API_PREFIX)

    # Custom OpenAPI config for Swagger
    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )

        openapi_schema.setdefault("components", {})["securitySchemes"] = {
            "BearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
            }
        }

        # Admin routes require an admin bearer token
        protected_prefix = f"{settings.API_PREFIX}/admin"
        for path_key, path_item in openapi_schema["paths"].items():
            if path_key.startswith(protected_prefix):
                for method in path_item.values():
                    method.setdefault("security", []).append({"BearerAuth": []})

        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi

    # Health check endpoint
    @app.get("/")
    def read_root():
        return {"status": "ok", "environment": settings.ENVIRONMENT}

    @app.get("/health")
    async def health_check(db: AsyncSession = Depends(get_db)):
        """Health check with database connectivity test"""
        try:
            await db.execute(select(1))
            return {"status": "healthy", "database": "connected"}
        except SQLAlchemyError as e:
            logger.error(f"Health check failed: {e}")
            return {"status": "unhealthy", "database": "disconnected"}

    return app


# Create and expose the FastAPI app
app = create_application()
