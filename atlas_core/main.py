# atlas_core/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from atlas_core.core.config import settings
from atlas_core.api.routes import api_router
from atlas_core.core.database import create_indexes, mongo_manager
from atlas_core.core.errors import register_exception_handlers
from atlas_core.core.logging_config import add_trace_id_middleware, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.PROJECT_NAME}...")
    try:
        await mongo_manager.connect()
        await create_indexes(mongo_manager.get_db())
    except ConnectionError:
        # Requests needing the store answer 503 until a restart succeeds
        logger.critical("Starting without a database connection.")
    yield
    await mongo_manager.disconnect()
    logger.info(f"{settings.PROJECT_NAME} stopped.")


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_ORIGIN],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(add_trace_id_middleware)

    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_PREFIX)
    return app


app = create_app()
