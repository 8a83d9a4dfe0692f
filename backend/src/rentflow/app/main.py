"""FastAPI application entry point for the RentFlow leasing API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rentflow.app.config import get_settings
from rentflow.app.error_handlers import register_error_handlers
from rentflow.app.providers import get_notifier
from rentflow.infra.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup, flush notifications on shutdown."""
    await init_db()
    yield
    await get_notifier().drain()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="RentFlow Leasing API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware (all origins in debug mode)
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from rentflow.app.routes.auth import router as auth_router
from rentflow.app.routes.users import router as users_router
from rentflow.app.routes.applications import router as applications_router
from rentflow.app.routes.leases import router as leases_router
from rentflow.app.routes.payments import router as payments_router

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(applications_router)
app.include_router(leases_router)
app.include_router(payments_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "rentflow"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "rentflow.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
