"""FastAPI application factory: wires the hub, routers, exception handlers and lifespan."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from workhub import __version__
from workhub.api.dashboard import router as dashboard_router
from workhub.api.tasks import router as tasks_router
from workhub.api.ws import router as ws_router
from workhub.config import get_settings
from workhub.errors import NoWorkerAvailable, PersistenceError, UnknownTaskType, WorkerTimeout
from workhub.gateway.hub import Hub
from workhub.observability.logging import configure_logging
from workhub.observability.middleware import RequestContextMiddleware
from workhub.observability.otel import configure_otel
from workhub.storage.database import async_session_maker, engine, init_db

configure_logging()
settings = get_settings()


def create_app(session_maker=async_session_maker, db_engine=engine, app_settings=settings) -> FastAPI:
    """Build the application around one hub instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        print("[Workhub] Starting coordination hub...")
        await init_db(db_engine)
        print("[Workhub] Database initialized")
        app.state.hub = Hub(session_maker, app_settings)

        yield

        print("[Workhub] Shutting down...")

    app = FastAPI(
        title=app_settings.app_name,
        description="Worker coordination and job dispatch hub",
        version=__version__,
        lifespan=lifespan,
    )
    configure_otel(app, db_engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(NoWorkerAvailable)
    async def no_worker_handler(request: Request, exc: NoWorkerAvailable):
        return JSONResponse(status_code=503, content={"error": "No active workers available"})

    @app.exception_handler(WorkerTimeout)
    async def worker_timeout_handler(request: Request, exc: WorkerTimeout):
        return JSONResponse(status_code=504, content={"error": "Worker Timeout"})

    @app.exception_handler(UnknownTaskType)
    async def unknown_task_handler(request: Request, exc: UnknownTaskType):
        return JSONResponse(status_code=404, content={"error": f"unknown task type: {exc}"})

    @app.exception_handler(ValidationError)
    async def payload_invalid_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=422,
            content={"error": "invalid payload", "detail": exc.errors(include_url=False, include_context=False)},
        )

    @app.exception_handler(PersistenceError)
    async def persistence_handler(request: Request, exc: PersistenceError):
        return JSONResponse(status_code=500, content={"error": "server error"})

    app.include_router(ws_router)
    app.include_router(tasks_router)
    app.include_router(dashboard_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": app_settings.app_name,
            "version": __version__,
            "docs": "/docs",
        }

    return app


app = create_app()
