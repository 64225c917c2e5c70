"""FastAPI application entrypoint for Mind Theatre."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator

from mindtheatre.libs.logging_utils import colorize, configure_logging

configure_logging()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette_exporter import PrometheusMiddleware, handle_metrics

from mindtheatre import __version__
from mindtheatre.apps.api.core.services import Services, build_services
from mindtheatre.apps.api.routes.admin import router as admin_router
from mindtheatre.apps.api.routes.agents import router as agents_router
from mindtheatre.apps.api.routes.chats import router as chats_router
from mindtheatre.apps.api.routes.health import router as health_router
from mindtheatre.libs.schemas.settings import get_settings

LOGGER = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the API. When ``services`` is supplied the lifespan uses it as-is
    (tests); otherwise the container is built from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        container = services or await build_services(get_settings())
        app.state.services = container
        LOGGER.info(
            colorize("Mind Theatre ready", "cyan"),
            extra={
                "event": "startup",
                "agents": container.roster.names(),
                "storage": container.settings.storage_backend,
                "provider": container.settings.llm_provider,
            },
        )
        try:
            yield
        finally:
            await container.close()

    settings = services.settings if services is not None else get_settings()
    app = FastAPI(title=f"{settings.app_name} API", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(PrometheusMiddleware, app_name="mindtheatre", group_paths=True)
    app.add_route("/metrics", handle_metrics)

    app.include_router(health_router)
    app.include_router(chats_router)
    app.include_router(agents_router)
    app.include_router(admin_router)
    if services is not None:
        app.state.services = services
    return app


app = create_app()

__all__ = ["app", "create_app"]
