import logging
from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from waitlist.api.waitlist import router as waitlist_router
from waitlist.core.config import get_settings
from waitlist.core.database import AsyncSessionLocal, engine
from waitlist.core.exceptions import StoreError, WaitlistError
from waitlist.core.schema import ensure_schema

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),
    ],
)

# Completely disable SQLAlchemy logging
logging.getLogger("sqlalchemy").setLevel(logging.CRITICAL)
logging.getLogger("sqlalchemy.engine").setLevel(logging.CRITICAL)
logging.getLogger("sqlalchemy.pool").setLevel(logging.CRITICAL)

settings = get_settings()

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting up {settings.PROJECT_NAME} waitlist service...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(
        f"Database URL: {settings.DATABASE_URL.split('@')[-1] if '@' in settings.DATABASE_URL else 'local'}"
    )
    logger.info(f"Waitlist table: {settings.table_name}")

    # Requests provision the table themselves; doing it once here only
    # surfaces connection problems early.
    try:
        async with AsyncSessionLocal() as session:
            await ensure_schema(session, settings.table_name)
        logger.info("Waitlist table created/verified")
    except StoreError as e:
        logger.warning(f"Waitlist table check at startup failed: {e}")

    yield

    logger.info("Shutting down waitlist service...")
    await engine.dispose()


app = FastAPI(
    title=f"{settings.PROJECT_NAME} Waitlist API", lifespan=lifespan, docs_url=None, redoc_url=None
)

# configure logfire only if token exists and not using fake token
if settings.LOGFIRE_TOKEN and settings.LOGFIRE_TOKEN != "fake-token-for-testing":
    try:
        logfire.configure(token=settings.LOGFIRE_TOKEN)
        logfire.instrument_fastapi(app, capture_headers=False, excluded_urls="/healthz")
        # Instrument SQLAlchemy (async engine) so query spans are captured
        logfire.instrument_sqlalchemy(engine)
    except Exception as e:
        logger.warning(f"Failed to configure Logfire: {e}")


# The public landing page calls the API cross-origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.CORS_ALLOW_ORIGIN],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Admin-Token"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.exception_handler(WaitlistError)
async def waitlist_error_handler(request: Request, exc: WaitlistError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error."})


@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"status": "healthy"}


app.include_router(waitlist_router)
