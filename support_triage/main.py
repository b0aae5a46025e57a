"""FastAPI application wiring for the support triage service.

- Configures logging, Prometheus metrics and rate limiting.
- Builds the triage pipeline on startup: Postgres-backed when
  ``DATABASE_URL`` is set, in-memory otherwise.
- Exposes health/version endpoints next to the triage router.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .pipeline import build_in_memory_pipeline, build_postgres_pipeline
from .routers import triage
from .settings import get_settings

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Extract a best-effort client IP for rate limiting.

    Prefer ``X-Forwarded-For`` (first hop) if present, otherwise use the
    socket peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@asynccontextmanager
async def lifespan(app: FastAPI):
    owned = None
    if getattr(app.state, "pipeline", None) is None:
        settings = get_settings()
        if settings.database_url:
            owned = await build_postgres_pipeline(settings)
        else:
            logger.warning("DATABASE_URL not set; using in-memory triage stores")
            owned = build_in_memory_pipeline(settings)
        app.state.pipeline = owned
    try:
        yield
    finally:
        if owned is not None:
            await owned.close()
            app.state.pipeline = None


limiter = Limiter(key_func=get_client_ip, default_limits=[get_settings().rate_limit])

app = FastAPI(title="Support Triage", version=__version__, lifespan=lifespan)
init_logging(app)
app.state.limiter = limiter
app.state.pipeline = None
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.include_router(triage.router)

# Expose Prometheus metrics
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


@app.get("/api/health")
async def health():
    """Liveness/readiness probe with a minimal JSON body."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Return version information for the application."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }
