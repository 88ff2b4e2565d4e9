"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from droxstock.core.config import settings
from droxstock.core.middleware import setup_middleware
from droxstock.core.exceptions import DroxstockError

from droxstock.api.auth import router as auth_router
from droxstock.api.roles import router as roles_router
from droxstock.api.permissions import router as permissions_router
from droxstock.api.role_permissions import router as role_permissions_router
from droxstock.api.user_roles import router as user_roles_router
from droxstock.api.user_permissions import router as user_permissions_router
from droxstock.api.users import router as users_router, pending_router
from droxstock.api.dapartos import router as dapartos_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("droxstock")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("🚀 Starting Droxstock API")
    # Ensure MinIO bucket exists
    try:
        from droxstock.services.file_service import file_service
        file_service.ensure_bucket()
        logger.info("✅ MinIO bucket ready")
    except Exception as e:
        logger.warning(f"⚠️  MinIO not available: {e}")

    # Redis check
    from droxstock.services.cache_service import cache_service
    if cache_service.health_check():
        logger.info("✅ Redis connected")
    else:
        logger.warning("⚠️  Redis not available")

    yield

    logger.info("🔻 Shutting down Droxstock API")


app = FastAPI(
    title="Droxstock API",
    description="RBAC administration and Daparto catalog imports",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


@app.exception_handler(DroxstockError)
async def droxstock_exception_handler(request: Request, exc: DroxstockError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    errors = exc.details.get("errors") or [exc.message]
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.message,
            "error_type": exc.code,
            "errors": {exc.field or "general": errors},
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {
        "success": False,
        "message": "An unexpected error occurred",
        "error_type": "server_error",
    }
    if settings.DEBUG:
        content["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# Register routers
app.include_router(auth_router, prefix="/api")
app.include_router(roles_router, prefix="/api")
app.include_router(permissions_router, prefix="/api")
app.include_router(role_permissions_router, prefix="/api")
app.include_router(user_roles_router, prefix="/api")
app.include_router(user_permissions_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(pending_router, prefix="/api")
app.include_router(dapartos_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
