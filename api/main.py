"""Storefront API — FastAPI entry point.

Registers middleware, routers, the error handler and lifecycle hooks. Each
vertical adds its own router under /api/{vertical}/.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.middleware import IdentityMiddleware
from core.database import close_db, init_db
from verticals.storefront.errors import StorefrontError

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
).split(",")
DEBUG = os.getenv("DEBUG", "true").lower() == "true"
CREATE_TABLES = os.getenv("CREATE_TABLES", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    if CREATE_TABLES:
        await init_db()
    logger.info("Storefront API started")
    yield
    await close_db()
    logger.info("Storefront API shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Storefront",
    description="Book catalog with purchases, fixed-term rentals and inventory tracking",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Caller identity from the upstream gateway
app.add_middleware(IdentityMiddleware)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.retryable:
        logger.warning("%s %s failed transiently: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ---------------------------------------------------------------------------
# Routers: verticals register here
# ---------------------------------------------------------------------------

from verticals.storefront.router import router as storefront_router  # noqa: E402

app.include_router(storefront_router, prefix="/api/storefront", tags=["Storefront"])


# ---------------------------------------------------------------------------
# Health & root
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/")
async def root():
    return {
        "name": "Storefront",
        "version": "0.1.0",
        "docs": "/docs",
        "verticals": ["storefront"],
        "description": "Book catalog with purchases and rentals",
    }
