import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cfp_engine import __version__
from cfp_engine.api.v1.router import api_v1_router
from cfp_engine.core.config import settings, validate_settings_for_production
from cfp_engine.core.logging import redact_secrets, setup_logging
from cfp_engine.core.metrics import APP_INFO, PrometheusMiddleware, metrics_response
from cfp_engine.core.retry import ErrorContext, create_error_response
from cfp_engine.core.sentry import init_sentry

# Configure logging before anything else
setup_logging()
init_sentry()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    APP_INFO.info({"version": __version__, "env": settings.app_env})
    logger.info("Starting CFP engine (env=%s, cache=%s)", settings.app_env, settings.cache_enabled)

    yield

    logger.info("CFP engine shut down")


app = FastAPI(
    title="CFP Engine",
    description="AI visibility fingerprinting and Crawl-Fingerprint-Publish orchestration",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, redact_secrets(tb))
    body = create_error_response(exc, ErrorContext(operation=f"{request.method} {request.url.path}"))
    return JSONResponse(status_code=500, content=body)


app.add_middleware(PrometheusMiddleware)

# API routes
app.include_router(api_v1_router)


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()
