from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from typing import Callable, Optional
import logging
import subprocess
import time

from . import db
from .api.health import router as health_router
from .api.jobs import router as jobs_router
from .api.prometheus import router as prometheus_router
from .clients.external import ExternalProvisioningClient
from .config import API_PREFIX, API_VERSION, APP_PORT, AUTO_MIGRATE
from .errors import StoreUnavailableError
from .logging_config import setup_logging
from .orchestrator import Orchestrator
from .queue_manager import JobQueue
from .services.store import ProvisioningStore
from .status import StatusService
from .webhook import WebhookNotifier
from .worker import WorkerPool

# Configure logging at import time
setup_logging()

logger = logging.getLogger("webprov")


def run_migrations():
    """alembic upgrade head"""
    try:
        subprocess.run(["alembic", "upgrade", "head"], check=True)
        logger.info("Alembic auto-migrate: upgrade head OK", extra={"component": "api"})
    except (OSError, subprocess.CalledProcessError):
        logger.exception("Alembic auto-migrate failed", extra={"component": "api"})
        raise


class ApiVersionHeaderMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-API-Version"] = "v1"
        return response


def create_app(
    engine=None,
    session_factory=None,
    client: Optional[ExternalProvisioningClient] = None,
    notifier: Optional[WebhookNotifier] = None,
    start_workers: bool = True,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build the application. Arguments override the default components
    (the configured database, remote services and webhook)."""

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        logger.info("Web Provisioner starting up", extra={"component": "api", "version": API_VERSION})

        bind = engine or db.engine
        if AUTO_MIGRATE and engine is None:
            run_migrations()
        else:
            db.init_db(bind)

        factory = session_factory or db.SessionLocal
        external = client or ExternalProvisioningClient()
        queue = JobQueue(factory, clock=clock)
        orchestrator = Orchestrator(ProvisioningStore(factory), external)
        pool = WorkerPool(queue, orchestrator, notifier or WebhookNotifier())

        application.state.engine = bind
        application.state.job_queue = queue
        application.state.status_service = StatusService(queue)
        application.state.worker_pool = pool
        application.state.external_client = external

        if start_workers:
            await pool.start()

        logger.info("Web Provisioner ready", extra={
            "component": "api",
            "workers": pool.size if start_workers else 0,
        })

        try:
            yield
        finally:
            await pool.stop()
            if client is None:
                await external.aclose()
            logger.info("Web Provisioner shutting down", extra={"component": "api"})

    application = FastAPI(title="Web Provisioner", version=API_VERSION, lifespan=lifespan)
    application.add_middleware(ApiVersionHeaderMiddleware)

    # Database cold start / outage
    async def database_unavailable_handler(request: Request, exc: Exception):
        logger.warning("Database unavailable: %s", exc, extra={"component": "api", "path": request.url.path})
        return JSONResponse({"status": "warming_up", "detail": "database not ready"}, status_code=503)

    application.add_exception_handler(StoreUnavailableError, database_unavailable_handler)
    application.add_exception_handler(OperationalError, database_unavailable_handler)

    application.include_router(health_router, prefix=API_PREFIX)
    application.include_router(jobs_router, prefix=API_PREFIX)
    application.include_router(prometheus_router, prefix=API_PREFIX)
    return application


app = create_app()


def run():
    import uvicorn

    logger.info("Starting Web Provisioner on port %s", APP_PORT, extra={"component": "api"})
    uvicorn.run(
        "webprov.main:app",
        host="0.0.0.0",
        port=APP_PORT,
        reload=False,
        access_log=True
    )


if __name__ == "__main__":
    run()
