"""
FlyBook API - Main Application Entry Point
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import logging

# Prometheus metrics
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST, REGISTRY

from flybook.config import settings

REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

REQUEST_LATENCY = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint']
)
from flybook.routers import amadeus, bookings, flights, health
from flybook.schemas.common import fail
from flybook.services.amadeus import build_amadeus_client
from flybook.services.errors import FlyBookError
from flybook.services.search_cache import MemoryTTLCache, RedisTTLCache
from flybook.utils.database import init_db, close_db
from flybook.utils.redis import init_redis, close_redis

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager - handles startup and shutdown events
    """
    logger.info("Starting FlyBook API...")

    await init_db()

    if settings.SEARCH_CACHE_BACKEND == "redis":
        app.state.search_cache = RedisTTLCache(await init_redis())
    else:
        app.state.search_cache = MemoryTTLCache(max_entries=settings.SEARCH_CACHE_MAX_ENTRIES)

    app.state.amadeus = build_amadeus_client(settings)
    if not app.state.amadeus.credentials.is_configured:
        logger.warning("AMADEUS_CLIENT_ID / AMADEUS_CLIENT_SECRET missing, flight lookups will fail")

    logger.info("FlyBook API ready to serve requests!")

    yield

    logger.info("Shutting down FlyBook API...")

    await app.state.amadeus.aclose()
    await close_redis()
    await close_db()

    logger.info("Cleanup completed")


app = FastAPI(
    title="FlyBook API",
    description="""
    ## Flight Search & Booking API

    - Search Amadeus flight offers (cached for 5 minutes per query)
    - Book legacy flights or Amadeus offers
    - Track the flight status of every booking
    """,
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware with Prometheus metrics
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    # Skip /metrics endpoint to avoid recursion
    if request.url.path != "/metrics":
        # Label by route template so path parameters do not create new series
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or "unmatched"
        method = request.method
        status = response.status_code

        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
        REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(process_time)

    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.exception_handler(FlyBookError)
async def flybook_error_handler(request: Request, exc: FlyBookError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    data = {"error": exc.detail} if exc.detail is not None else None
    return ORJSONResponse(status_code=exc.status_code, content=fail(exc.message, data))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]
    return ORJSONResponse(status_code=400, content=fail(message, {"errors": details}))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return ORJSONResponse(status_code=exc.status_code, content=fail(str(exc.detail)))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} failed unexpectedly: {exc}")
    return ORJSONResponse(status_code=500, content=fail("Internal server error"))


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(flights.router, prefix=f"{settings.API_PREFIX}/flights", tags=["Flights"])
app.include_router(amadeus.router, prefix=f"{settings.API_PREFIX}/amadeus", tags=["Amadeus"])
app.include_router(bookings.router, prefix=f"{settings.API_PREFIX}/bookings", tags=["Bookings"])


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint - API information"""
    return {
        "success": True,
        "message": "FlyBook backend running",
        "data": {"version": "1.0.0", "docs": "/docs" if settings.DEBUG else "disabled"},
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )
