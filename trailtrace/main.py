# trailtrace/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI

from trailtrace.api.v1 import routes_health, routes_routing
from trailtrace.core.config import settings
from trailtrace.core.logger import logger
from trailtrace.core.logging_config import setup_logging
from trailtrace.services.factory import (
    build_client,
    build_oracle,
    build_routing_service,
    build_synthesis_service,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One oracle (and HTTP connection pool) per process
    oracle = build_oracle(settings)
    client = build_client(oracle, settings)
    app.state.routing_service = build_routing_service(client, settings)
    app.state.synthesis_service = build_synthesis_service(client, settings)
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} started ({settings.ROUTING_BACKEND})")
    yield
    await oracle.aclose()
    logger.info(f"{settings.APP_NAME} shutdown")


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Turns freehand drawings into runnable, road-following routes.",
        lifespan=lifespan,
    )

    # Routers
    app.include_router(routes_health.router, prefix="", tags=["health"])
    app.include_router(routes_routing.router, prefix="", tags=["routing"])

    return app


app = create_app()
