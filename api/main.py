from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core import db, settings
from core.handlers import register_error_handlers
from core.log import configure_logging
from entities import EntitySchema, registry
from entities.definitions import ROUTES
from locks import router as locks_router
from mediation.mediator import Mediator
from mediation.provider import DataAccessProvider
from mediation.router import build_router

ProviderFactory = Callable[[EntitySchema], DataAccessProvider]


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Initialize the DB pool once per process.
    configure_logging()
    await db.init_pool()
    try:
        yield
    finally:
        await db.close_pool()


def create_app(provider_factory: ProviderFactory | None = None) -> FastAPI:
    app = FastAPI(lifespan=lifespan)

    # Allow local frontend dev server to call this API from the browser.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    base = settings.api_base()
    for model_name, (route_path, concurrency_protection) in ROUTES.items():
        schema = registry.schema(model_name)
        provider = provider_factory(schema) if provider_factory and schema else None
        protect = concurrency_protection and settings.concurrency_protection_default()
        mediator = Mediator(model_name, protect, provider=provider)
        app.include_router(build_router(mediator, route_path), prefix=base, tags=[model_name])

    app.include_router(locks_router.router, prefix=base, tags=["locks"])

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/")
    def root() -> dict:
        return {"message": "entity rest api", "entities": registry.names()}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("main:app", host=settings.host(), port=settings.port(), log_level=settings.log_level().lower())


if __name__ == "__main__":
    run()
