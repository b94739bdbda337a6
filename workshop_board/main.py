# workshop_board/main.py

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .database import Database
from .dependencies import require_session_credentials
from .errors import register_error_handlers
from .logs import configure_logging, log_requests
from .routers import appointments, auth, job_orders, users


def create_app(settings: Settings = None, database: Database = None) -> FastAPI:
    settings = settings or Settings.from_env()
    database = database or Database(settings.database_url)

    # ────────────────────────────── DATABASE ──────────────────────────────

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.create_all()
        yield
        database.close()

    app = FastAPI(
        title="Workshop Board API",
        description="Job orders, appointments and technician scheduling for the service workshop",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = database

    # anonymous calls are turned away before any body is parsed
    app.middleware("http")(require_session_credentials)

    # ────────────────────────────── CORS ──────────────────────────────
    # Only the web gateway origin calls this service from a browser
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.web_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)
    register_error_handlers(app)

    # ────────────────────────────── ROUTES ──────────────────────────────

    @app.get("/", tags=["Health"])
    def root():
        return {"message": "Workshop Board API is running"}

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "environment": settings.environment}

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(appointments.router)
    app.include_router(job_orders.router)
    return app


app = create_app()


def run():
    settings = app.state.settings
    configure_logging(settings.log_level)
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "4000")),
        log_level=settings.log_level.lower(),
    )
