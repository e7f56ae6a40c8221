import logging.config

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from app.api.metrics import router as metrics_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import Settings, get_settings
from app.database import SessionLocal
from app.services.notifications import SqlNotificationStore
from app.services.realtime import (
    close_realtime_services,
    create_call_request_cooldown,
    create_realtime_services,
)


def build_logging_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
            }
        },
        "root": {
            "handlers": ["default"],
            "level": level.upper(),
        },
        "loggers": {
            "amora": {"level": level.upper()},
            "app": {"level": level.upper()},
        },
    }


settings = get_settings()

logging.config.dictConfig(build_logging_config(settings.log_level))


def create_app(
    session_factory: sessionmaker[Session] | None = None,
    app_settings: Settings | None = None,
) -> FastAPI:
    """Build the API with its realtime services bound to *session_factory*."""

    app_settings = app_settings or settings
    factory = session_factory or SessionLocal

    application = FastAPI(title=app_settings.app_name, debug=app_settings.debug)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).rstrip("/") for origin in app_settings.cors_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    realtime = create_realtime_services(factory, app_settings)
    application.state.session_factory = factory
    application.state.settings = app_settings
    application.state.realtime = realtime
    application.state.notification_store = SqlNotificationStore(factory)
    application.state.call_request_cooldown = create_call_request_cooldown(
        app_settings, realtime.cooldown.store
    )

    @application.get("/health", tags=["system"])
    def health_check() -> dict[str, object]:
        """Simple health check endpoint."""
        return {
            "status": "ok",
            "environment": app_settings.environment,
            "connections": realtime.registry.connection_count(),
        }

    @application.on_event("shutdown")
    async def _shutdown() -> None:
        await close_realtime_services(realtime)

    application.include_router(api_router, prefix="/api")
    application.include_router(ws_router)
    application.include_router(metrics_router)
    return application


app = create_app()
