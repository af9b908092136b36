"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from ccweb import __version__
from ccweb.api.deps import Services, set_services
from ccweb.api.errors import ApiError, api_error_handler, validation_error_handler
from ccweb.api.routes import agent, files, terminal
from ccweb.config import Config
from ccweb.services.container import ServiceContainer
from ccweb.timeutil import utc_now_iso


def create_app(
    config: Config | None = None, *, container: ServiceContainer | None = None
) -> FastAPI:
    """Build the app; services are created (or adopted) and started in the lifespan."""
    if container is not None:
        config = container.config
    elif config is None:
        config = Config.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services = container or await ServiceContainer.create(config)
        set_services(app.state, services)
        await services.start()
        try:
            yield
        finally:
            await services.close()

    app = FastAPI(title="ccweb", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.get("/health")
    def health(services: Services) -> dict[str, object]:
        return {
            "status": "ok",
            "timestamp": utc_now_iso(),
            "services": {
                "fileSystem": True,
                "terminal": True,
                "agent": services.config.agent_available,
            },
        }

    app.include_router(files.router)
    app.include_router(agent.router)
    app.include_router(terminal.router)
    return app
