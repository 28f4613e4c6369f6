import logging
import logging.config
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.db import create_engine_from_settings, init_db, make_session_factory
from backend.app.core.errors import register_error_handlers
from backend.app.api.routes import mechanics, reviews, services, stubs, system

logger = logging.getLogger(__name__)


def setup_logging(service_name: str, settings: Settings) -> None:
    log_level = settings.LOG_LEVEL

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "default",
        }
    }

    root_handlers = ["console"]

    if settings.LOG_TO_FILE:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "default",
            "filename": str(log_dir / f"{service_name}.log"),
            "maxBytes": settings.LOG_MAX_BYTES,
            "backupCount": settings.LOG_BACKUP_COUNT,
            "encoding": "utf-8",
        }
        handlers["file_error"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "default",
            "filename": str(log_dir / f"{service_name}.error.log"),
            "maxBytes": settings.LOG_MAX_BYTES,
            "backupCount": settings.LOG_BACKUP_COUNT,
            "encoding": "utf-8",
        }
        root_handlers.extend(["file", "file_error"])

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                }
            },
            "handlers": handlers,
            "root": {"level": log_level, "handlers": root_handlers},
        }
    )


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
) -> FastAPI:
    """
    Build one application instance with its own engine and session factory.
    Tests pass their own Settings / engine; nothing is shared between apps.
    """
    settings = settings or default_settings
    engine = engine or create_engine_from_settings(settings)
    session_factory = make_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(
            engine,
            seed_catalog=settings.SEED_CATALOG,
            session_factory=session_factory,
        )
        logger.info("%s started (env=%s, db=%s)", settings.PROJECT_NAME, settings.ENV, engine.dialect.name)
        yield
        await engine.dispose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app, debug=settings.DEBUG)

    app.include_router(system.router)

    # API
    app.include_router(mechanics.router, prefix="/api")
    app.include_router(services.router, prefix="/api")
    app.include_router(reviews.router, prefix="/api")
    app.include_router(stubs.auth_router, prefix="/api")
    app.include_router(stubs.bookings_router, prefix="/api")
    app.include_router(stubs.customers_router, prefix="/api")

    return app


setup_logging("backend", default_settings)

app = create_app()
