"""
FastAPI application entry point for the Tender Desk API.

Configures logging, CORS, the database pool lifecycle, the error body shape
and the API routers.

Error responses:
    Every HTTPException and request validation error is returned as
    ``{"ok": false, "error": "<message>"}`` so clients read one shape.

Run locally:
    uvicorn tenderdesk.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenderdesk import __version__
from tenderdesk.api import api_router
from tenderdesk.core.config import get_settings
from tenderdesk.core.database import close_db, init_db


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    On startup: initialize the database pool and schema.
    On shutdown: close the pool.

    A database that is down at startup is logged, not fatal; the pool is
    created lazily on the first request that needs it.
    """
    logger.info("Tender Desk API starting")

    try:
        await init_db()
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")

    yield

    logger.info("Tender Desk API shutting down")

    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


app = FastAPI(
    title="Tender Desk API",
    version=__version__,
    description=(
        "Commodity tender forecasting desk. Delegates forecasts to the workflow "
        "engine, stores prediction history and serves reports and uploads."
    ),
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} rejected: invalid request body")
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": "Invalid request body", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


app.include_router(api_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring and load balancer probes."""
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {
        "name": "Tender Desk API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tenderdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
