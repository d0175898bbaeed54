"""CMM Calc HTTP API.

Run with:
    uvicorn cmmcalc.web.app:app --reload

Mounts the taxonomy, run, rule set, material, legacy estimator and seed
routers under ``/cmm`` plus ``/health`` and the Prometheus ``/metrics``
endpoint. Domain errors are mapped onto status codes here so route
handlers can let them propagate.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from cmmcalc import __version__
from cmmcalc.core.errors import ConfigurationError, ConflictError, NotFoundError
from cmmcalc.core.logging import configure_logging
from cmmcalc.db.connection import close_db
from cmmcalc.web.routes import health, legacy, materials, rulesets, runs, seed, taxonomy

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("app_started", version=__version__)
    yield
    await close_db()
    logger.info("app_stopped")


app = FastAPI(
    title="CMM Calc",
    description="Taxonomy-driven material quantity takeoff with versioned rule sets",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            logger.info(
                "request_completed",
                status_code=response.status_code,
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise


app.add_middleware(RequestLoggingMiddleware)

# Prometheus Metrics
Instrumentator().instrument(app).expose(app)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "entity": exc.entity},
    )


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("configuration_error", error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc)},
    )


app.include_router(health.router)
app.include_router(taxonomy.router)
app.include_router(runs.router)
app.include_router(rulesets.router)
app.include_router(materials.router)
app.include_router(legacy.router)
app.include_router(seed.router)
