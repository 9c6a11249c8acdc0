import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shortlink_app.config import settings
from shortlink_app.logging_config import setup_logging, get_logger
from shortlink_app.errors import ShortLinkError
from shortlink_app.api import shorturls, redirect
from shortlink_app.dependencies import get_audit_log, get_clock, get_geo_lookup, get_link_store
from shortlink_app.expiry_worker.sweeper import ExpirySweeper
from shortlink_app.storage.strategies import LinkStoreStrategy

setup_logging(settings.log_level, settings.log_json)
logger = get_logger("main")


def _provider(app: FastAPI, dependency):
    """Resolve a singleton provider, honouring dependency overrides"""
    return app.dependency_overrides.get(dependency, dependency)()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    store = _provider(app, get_link_store)
    geo = _provider(app, get_geo_lookup)
    audit = _provider(app, get_audit_log)

    sweeper_task = None
    if settings.expiry_sweep_enabled and store.needs_sweeper:
        sweeper = ExpirySweeper(
            store=store,
            interval=settings.expiry_sweep_interval_seconds,
            store_timeout=settings.store_timeout_seconds,
            clock=_provider(app, get_clock),
        )
        sweeper_task = asyncio.create_task(sweeper.start())

    logger.info("%s %s started (%s)", settings.app_name, settings.app_version, settings.environment)
    yield

    # Shutdown
    if sweeper_task is not None:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
    await audit.aclose()
    await geo.aclose()
    await store.close()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="A short link service built with FastAPI",
    debug=settings.debug,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "%s %s - %d (%.2fms)",
        request.method, request.url.path, response.status_code, duration_ms,
    )
    return response


@app.exception_handler(ShortLinkError)
async def short_link_error_handler(request: Request, exc: ShortLinkError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail or exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Request body must be a JSON object"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = "Route not found" if exc.status_code == status.HTTP_404_NOT_FOUND else exc.detail
    return JSONResponse(status_code=exc.status_code, content={"message": message}, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error"},
    )


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
async def health_check(store: LinkStoreStrategy = Depends(get_link_store)):
    """Health check endpoint"""
    store_ok = await store.ping()
    return {
        "status": "healthy" if store_ok else "degraded",
        "environment": settings.environment,
        "store": "healthy" if store_ok else "unhealthy",
    }


######## Include routers
app.include_router(shorturls.router)
app.include_router(redirect.router)
