"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from mapping_service.api.v1.endpoints import health
from mapping_service.api.v1.exception_handlers import register_exception_handlers
from mapping_service.api.v1.router import api_router
from mapping_service.core.config import settings
from mapping_service.core.database import close_database, init_database
from mapping_service.services.kinds import KINDS
from mapping_service.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    kinds: List[str] = Field(..., description="Mapping kinds served under /mapping/{kind}")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    LOGGER.info(
        "Starting mapping service",
        extra={
            "version": settings.app_version,
            "environment": settings.environment,
            "kinds": sorted(KINDS),
            "auto_migrate": settings.db.auto_migrate,
        },
    )

    try:
        await asyncio.wait_for(
            init_database(auto_migrate=settings.db.auto_migrate),
            timeout=settings.db_init_timeout,
        )
    except asyncio.TimeoutError:
        LOGGER.error(f"Mapping database not ready after {settings.db_init_timeout}s")
    except Exception as e:
        # Requests fail with 500 until the store is back; /health reports it
        LOGGER.error(f"Mapping database initialization failed: {e}", exc_info=True)

    yield

    LOGGER.info("Shutting down mapping service")
    await close_database()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Translates NOMIS identifiers to DPS identifiers and back",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Service version and the mapping kinds it serves",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    return RootResponse(
        message="Mapping service is running",
        version=settings.app_version,
        kinds=sorted(KINDS),
        docs="/docs",
        health="/health",
    )


def run() -> None:
    import uvicorn

    uvicorn.run(
        "mapping_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
