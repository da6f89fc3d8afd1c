"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import sys

from portal.core.config import settings
from portal.core.errors import PortalError
from portal.core.logging import audit_log
from portal.db.postgres import init_postgres, close_postgres
from portal.db.mongodb import init_mongodb, close_mongodb
from portal.db.redis import init_redis, close_redis
from portal.services.provisioning_service import wait_for_pending_compensations

# Import routers
from portal.api.auth import router as auth_router
from portal.api.admin import router as admin_router
from portal.api.coordinator import router as coordinator_router
from portal.api.teacher import router as teacher_router


# Systems of record, in connection order. Both are required.
REQUIRED_BACKENDS = [
    ("PostgreSQL document store", init_postgres, close_postgres),
    ("MongoDB identity directory", init_mongodb, close_mongodb),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Connect the document store and identity directory, failing fast if either
    is down. The Redis journal is optional: without it provisioning still
    works and the reconciliation sweep relies on its grace period alone.
    """
    print("=" * 50)
    print(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    print(f"Debug mode: {settings.DEBUG}")
    print(f"  Document store: {'DATABASE_URL' if settings.DATABASE_URL else 'component config'}")
    print(f"  Identity directory: {'MONGODB_URI' if settings.MONGODB_URI else 'component config'}")
    print(f"  Journal: {'REDIS_URL' if settings.REDIS_URL else 'component config'}"
          f"{' (TLS)' if settings.redis_ssl_enabled else ''}")
    print("=" * 50)

    opened = []
    for name, init, close in REQUIRED_BACKENDS:
        try:
            print(f"Connecting to {name}...")
            await init()
            opened.append(close)
            print(f"✓ {name} connected")
        except Exception as e:
            print(f"✗ {name} connection failed: {e}")
            for close_opened in reversed(opened):
                await close_opened()
            sys.exit(1)

    try:
        await init_redis()
        print("✓ Redis journal connected")
    except Exception as e:
        await close_redis()
        print(f"! Redis journal unavailable, continuing without it: {e}")

    print("Server ready.")

    yield

    print("Shutting down...")
    # Rollbacks still running must finish before their backends go away
    await wait_for_pending_compensations()
    await close_redis()
    for close in reversed(opened):
        await close()
    print("All connections closed")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="School portal core: account provisioning, teacher visibility and appraisals",
    lifespan=lifespan
)

# CORS_ORIGINS: "*" or a comma-separated list
if settings.CORS_ORIGINS == "*":
    allow_origins = ["*"]
else:
    allow_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Answer domain errors with their stable code."""
    if exc.status_code >= 500:
        audit_log.error(
            "api.request_failed",
            error=exc.message,
            details={"path": request.url.path, "code": exc.code, **exc.details}
        )
    content = {"error": exc.code, "detail": exc.message}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(coordinator_router)
app.include_router(teacher_router)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """
    Ping each backend. The service is unhealthy only when a system of record
    is down; a missing journal is reported but tolerated.
    """
    from portal.db.postgres import engine
    from portal.db.mongodb import mongodb
    from portal.db.redis import redis_client

    async def ping_postgres():
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def ping_mongodb():
        await mongodb.db.command("ping")

    health = {"status": "healthy", "databases": {}}

    for name, ping in (("postgres", ping_postgres), ("mongodb", ping_mongodb)):
        try:
            await ping()
            health["databases"][name] = "connected"
        except Exception as e:
            health["databases"][name] = f"error: {str(e)}"
            health["status"] = "unhealthy"

    if redis_client.client is None:
        health["databases"]["redis"] = "disabled"
    else:
        try:
            await redis_client.client.ping()
            health["databases"]["redis"] = "connected"
        except Exception as e:
            health["databases"]["redis"] = f"error: {str(e)}"

    return health
