import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pecc.core.config import APP_NAME, APP_VERSION, CORS_ORIGINS
from pecc.core.errors import AppError
from pecc.db import StoreError, get_store
from pecc.routes.admin import router as admin_router
from pecc.routes.auth import router as auth_router
from pecc.routes.catalog import router as catalog_router
from pecc.routes.premium import router as premium_router
from pecc.routes.support import router as support_router
from pecc.services.utils import log_error

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title=APP_NAME, version=APP_VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    for router in (auth_router, premium_router, catalog_router, support_router, admin_router):
        app.include_router(router, prefix="/api")

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse({"detail": exc.detail, "code": exc.code}, status_code=exc.status_code)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.exception("Store failure on %s", request.url.path, exc_info=exc)
        # Resolve the store the same way routes do, so test overrides apply
        provider = app.dependency_overrides.get(get_store, get_store)
        await log_error(provider(), type(exc).__name__, str(exc), request.url.path)
        return JSONResponse(
            {"detail": "Internal storage error", "code": "store_error"},
            status_code=500
        )

    # Health
    @app.get("/api/health")
    async def health():
        return {"status": "ok", "app": APP_NAME, "version": APP_VERSION}

    return app


app = create_app()
