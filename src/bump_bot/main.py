"""
Main application entry point for Bump Bot.

This module sets up the FastAPI application, configures logging, and wires
the resolver, GitHub client, store and orchestrator from one ``Settings``
instance built at process start.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings
from .exceptions import (
    AuthenticationError,
    BumpBotError,
    DependencyNotTrackedError,
    RepositoryNotConnectedError,
)
from .github_client import GitHubClient
from .models import BumpPrFailure, BumpRequest, LatestStableVersion, PullRequestRef
from .orchestrator import BumpPrOrchestrator
from .store import BumpStore, BumpStoreFactory
from .version_resolver import NpmVersionResolver


def setup_logging(settings: Settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level), format="%(message)s"
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if settings.log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _status_for(error: BumpBotError) -> int:
    if isinstance(error, DependencyNotTrackedError):
        return 404
    if isinstance(error, RepositoryNotConnectedError):
        return 400
    if isinstance(error, AuthenticationError):
        return 401
    # Upstream (GitHub, registry, database) failures.
    return 502


def create_app(
    settings: Settings | None = None,
    store: BumpStore | None = None,
    github_client: GitHubClient | None = None,
    resolver: NpmVersionResolver | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (read from the environment if omitted)
        store: Store backend (created from settings if omitted)
        github_client: GitHub client (created from settings if omitted)
        resolver: Version resolver (created from settings if omitted)

    Returns:
        Configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        app_settings = settings or Settings()
        setup_logging(app_settings)
        logger = structlog.get_logger()

        logger.info("Starting Bump Bot")
        logger.info(
            "Configuration loaded",
            store_backend=app_settings.store_backend,
            registry=app_settings.npm_registry_url,
            debug=app_settings.debug,
        )

        app_store = store or BumpStoreFactory.create_store(
            app_settings.database_config
        )
        app_github = github_client or GitHubClient(app_settings.github_app_config)

        app.state.settings = app_settings
        app.state.store = app_store
        app.state.resolver = resolver or NpmVersionResolver(app_settings)
        app.state.orchestrator = BumpPrOrchestrator(
            app_settings, app_github, app_store
        )

        yield

        await app_store.close()
        logger.info("Shutting down Bump Bot")

    app = FastAPI(
        title="Bump Bot",
        description="Opens dependency bump pull requests",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(BumpBotError)
    async def handle_bump_bot_error(request: Request, exc: BumpBotError) -> JSONResponse:
        structlog.get_logger().error(
            "Request failed", path=request.url.path, code=exc.code, error=str(exc)
        )
        return JSONResponse(
            status_code=_status_for(exc),
            content={"error": str(exc), "code": exc.code},
        )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Bump Bot", "version": __version__, "status": "active"}

    @app.get("/health")
    async def health_check(request: Request) -> JSONResponse:
        """Health check endpoint."""
        healthy = await request.app.state.store.health_check()
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "healthy" if healthy else "unhealthy"},
        )

    @app.get("/packages/{package_name:path}/latest")
    async def latest_version(package_name: str, request: Request) -> LatestStableVersion:
        """Resolve the latest stable npm version of a package."""
        return await request.app.state.resolver.resolve_latest_stable_version(
            package_name
        )

    @app.post("/bumps", response_model=None)
    async def create_bump(
        bump: BumpRequest, request: Request
    ) -> PullRequestRef | JSONResponse:
        """Open (or find) the bump PR for a dependency."""
        result = await request.app.state.orchestrator.create_bump_pr(
            bump.organization_id,
            bump.project_id,
            bump.dependency_name,
            bump.target_version,
            bump.current_version,
        )
        if isinstance(result, BumpPrFailure):
            return JSONResponse(status_code=409, content=result.model_dump())
        return result

    return app


def main() -> None:
    """Main entry point."""
    import uvicorn

    settings = Settings()
    setup_logging(settings)
    logger = structlog.get_logger()

    logger.info(
        "Starting server", host=settings.host, port=settings.port, debug=settings.debug
    )

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,  # We handle logging ourselves
    )


if __name__ == "__main__":
    main()
