import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from common.config import (
    AUTO_INIT_SCHEMA,
    CLIENT_URL,
    ENVIRONMENT,
    IS_PRODUCTION_ENVIRONMENT,
)
from common.database import DatabaseConnection, RedisConnection, init_schema
from common.exceptions import register_exception_handlers
from common.logging_config import setup_logging
from content.routes import template
from event.routes import event

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if AUTO_INIT_SCHEMA:
        try:
            init_schema()
        except Exception as e:
            logger.error(f"Startup failed: {e}")
            raise
    yield
    if DatabaseConnection._instance is not None:
        DatabaseConnection().close()
    if RedisConnection._instance is not None:
        RedisConnection().close()


def create_application() -> FastAPI:
    app = FastAPI(
        title="iFlow API",
        description="Community hubs: event scheduling, RSVPs and site content",
        version="1.0.0",
        docs_url=None if IS_PRODUCTION_ENVIRONMENT else "/api/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    if IS_PRODUCTION_ENVIRONMENT:
        # Frontend is served from the same origin
        allow_origins = []
    else:
        allow_origins = [CLIENT_URL] if CLIENT_URL else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=bool(CLIENT_URL),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=3600,
    )

    register_exception_handlers(app)

    @app.get("/api/health", tags=["health"])
    def health_check():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": ENVIRONMENT or "development",
        }

    app.include_router(event, prefix="/api/events", tags=["events"])
    app.include_router(template, prefix="/api/templates", tags=["templates"])
    return app


app = create_application()

if __name__ == "__main__":
    uvicorn.run("main:app", host="localhost", port=8000, reload=not IS_PRODUCTION_ENVIRONMENT)
