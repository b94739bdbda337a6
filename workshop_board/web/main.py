# workshop_board/web/main.py

import os
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI

from ..config import Settings
from ..errors import register_error_handlers
from ..logs import configure_logging, log_requests
from . import routes

BACKEND_TIMEOUT = 30.0


def create_app(settings: Settings = None, transport: httpx.AsyncBaseTransport = None) -> FastAPI:
    settings = settings or Settings.from_env()

    # ────────────────────────────── BACKEND CLIENT ──────────────────────────────

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            transport=transport,
            timeout=BACKEND_TIMEOUT,
        )
        yield
        await app.state.client.aclose()

    app = FastAPI(
        title="Workshop Board Web",
        description="Cookie session gateway between the browser and the Workshop Board API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.middleware("http")(log_requests)
    register_error_handlers(app)
    app.include_router(routes.router)
    return app


app = create_app()


def run():
    settings = app.state.settings
    configure_logging(settings.log_level)
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        log_level=settings.log_level.lower(),
    )
