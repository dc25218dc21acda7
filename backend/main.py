"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import clients, dropbox, firm_settings, maintenance, quickbooks, reviews
from config import settings
from database import get_session_local
from integrations.exceptions import ProviderError
from logging_config import setup_logging
from services.oauth_state_service import OAuthStateService

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Drop OAuth states that expired while the service was down."""
    db = get_session_local()()
    try:
        removed = OAuthStateService().purge_expired(db)
        db.commit()
        if removed:
            logger.info("Startup cleanup: removed %d expired OAuth states", removed)
    except Exception:
        db.rollback()
        logger.warning("OAuth state cleanup failed on startup", exc_info=True)
    finally:
        db.close()
    yield


def register_error_handlers(app: FastAPI) -> None:
    """Fallbacks for errors a router did not translate itself."""

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        label = exc.provider_name or "Upstream provider"
        logger.warning("%s error on %s %s: %s", label, request.method, request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": f"{label} request failed"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app = FastAPI(
    title="QB Review",
    description="QuickBooks connection management and reconciliation review orchestration",
    version="0.1.0",
    lifespan=lifespan,
)
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (clients, dropbox, firm_settings, maintenance, quickbooks, reviews):
    app.include_router(module.router)


@app.get("/health")
def health_check():
    return {"status": "ok"}
