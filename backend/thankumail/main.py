from time import perf_counter
import asyncio
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import make_url
from starlette.exceptions import HTTPException as StarletteHTTPException

from thankumail.api.routes import gifts, status
from thankumail.core.audit import audit_rate_limit_exceeded
from thankumail.core.config import settings
from thankumail.core.errors import BurstLimitExceeded, GiftError
from thankumail.core.logger import configure_logging
from thankumail.core.metrics import RequestMetrics
from thankumail.db.session import Base, async_session_factory, engine
from thankumail.models import models as _models  # noqa: F401
from thankumail.services.gift_store import GiftStore


logger = configure_logging()

DEMO_GIFT_ID = "demo-gift"

app = FastAPI(
    title=settings.app_name,
    description="Anonymous gifts delivered as one-time claim links",
    version="0.1.0",
)

request_metrics = RequestMetrics()

cors_origins = settings.backend_cors_origins

logger.info("CORS origins parsed=%s", cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id", "Retry-After"],
    max_age=600,
)


def _route_path(request: Request) -> str:
    # Route template keeps gift ids out of the metric keys
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


@app.middleware("http")
async def tracing_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    start = perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        duration_ms = (perf_counter() - start) * 1000.0
        request_metrics.record(_route_path(request), duration_ms, error=True)
        logger.exception(
            "Request failed id=%s method=%s path=%s duration_ms=%.2f",
            request_id,
            request.method,
            request.url.path,
            duration_ms,
        )
        raise

    duration_ms = (perf_counter() - start) * 1000.0
    request_metrics.record(_route_path(request), duration_ms, error=response.status_code >= 500)
    logger.info(
        "Request completed id=%s method=%s path=%s status=%s duration_ms=%.2f",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    response.headers["X-Request-Id"] = request_id
    return response


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


async def seed_demo_gift() -> None:
    async with async_session_factory() as session:
        store = GiftStore(session)
        if await store.count() > 0:
            logger.info("seed_noop")
            return
        await store.create(
            public_id=DEMO_GIFT_ID,
            recipient_email="demo@example.com",
            message="Welcome to ThanküMail 🎁",
            amount=settings.min_amount_cents,
        )
        logger.info("seed_inserted public_id=%s", DEMO_GIFT_ID)


@app.on_event("startup")
async def on_startup() -> None:
    settings.validate_secrets()

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(_handle_async_exception)

    db_url = make_url(settings.postgres_dsn)
    logger.info(
        "DB config driver=%s host=%s database=%s",
        db_url.get_backend_name(),
        db_url.host,
        db_url.database,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if settings.seed_demo_gift:
        await seed_demo_gift()


@app.exception_handler(GiftError)
async def gift_error_handler(request: Request, exc: GiftError):
    if isinstance(exc, BurstLimitExceeded):
        audit_rate_limit_exceeded(request, request.url.path, exc.retry_after)
    logger.info(
        "Request rejected method=%s path=%s status=%s reason=%s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.__class__.__name__,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    content: dict[str, str] = {"error": "Invalid payload"}
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
        if loc:
            content["field"] = loc[0]
        if first.get("msg"):
            content["error"] = str(first["msg"])
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(gifts.router)
app.include_router(status.router)


@app.get("/metrics")
async def get_metrics() -> dict[str, object]:
    return request_metrics.snapshot()


def _handle_async_exception(loop, context) -> None:
    message = context.get("message", "Async error")
    exc = context.get("exception")
    if exc:
        logger.error("Async error: %s", message, exc_info=exc)
    else:
        logger.error("Async error: %s", message)
