"""Punto de entrada principal para la aplicación FastAPI."""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes.contacts import router as contacts_router
from app.api.routes.health import router as health_router
from app.campaigns.registry import CampaignRegistry
from app.core.config import Settings, settings as default_settings
from app.core.logging import configure_logging, get_logger, resolve_log_level
from app.core.middleware import RequestLoggingMiddleware
from app.services.contact_batches import ContactBatchService
from app.services.contact_stores import ContactStores
from app.services.notifications import NotificationDispatcher

SINGLE_STORE_KEY = "default"


def build_registry(config: Settings) -> CampaignRegistry:
    """En modo `single` el registro tiene una sola entrada con la base por defecto."""
    if config.campaign_mode == "single":
        return CampaignRegistry({SINGLE_STORE_KEY: config.single_database})
    return CampaignRegistry(config.campaigns)


def create_app(
    config: Settings | None = None,
    *,
    stores: ContactStores | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> FastAPI:
    """Crea la app y su raíz de composición (registro, conexiones, pipeline).

    `stores` y `dispatcher` permiten sustituir MongoDB y SendGrid en pruebas.
    """
    config = config or default_settings
    if not config.mongo_uri:
        raise RuntimeError("MONGO_URI missing in environment")

    default_log_level = logging.DEBUG if config.environment != "production" else logging.INFO
    log_level = resolve_log_level(config.log_level, default=default_log_level)
    per_logger_files: dict[str, str] = {}
    if config.log_file_path:
        log_dir = Path(config.log_file_path).parent
        per_logger_files = {
            "app.request": str(log_dir / "request.log"),
            "app.services.notifications": str(log_dir / "notifications.log"),
        }
    configure_logging(
        level=log_level,
        log_file=config.log_file_path,
        per_logger_files=per_logger_files,
    )

    multi_campaign = config.campaign_mode == "multi"
    if stores is None:
        stores = ContactStores(
            build_registry(config),
            base_uri=config.mongo_uri,
            query=config.mongo_query if multi_campaign else None,
            collection_name=config.contacts_collection,
            shared_uri=not multi_campaign,
        )
    if dispatcher is None:
        dispatcher = NotificationDispatcher(
            api_key=config.sendgrid_api_key,
            from_email=config.mail_from_email,
            from_name=config.mail_from_name,
            api_url=config.sendgrid_api_url,
            timeout=config.notification_timeout_seconds,
            concurrency=config.notification_concurrency,
        )

    app = FastAPI(title="Campaign Contacts API", version="0.1.0")
    app.state.settings = config
    app.state.stores = stores
    app.state.batch_service = ContactBatchService(
        stores,
        dispatcher,
        multi_campaign=multi_campaign,
        default_campaign=None if multi_campaign else SINGLE_STORE_KEY,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RequestLoggingMiddleware,
        level=config.request_log_level,
        skip_prefixes=config.request_log_skip_prefixes,
    )

    app.include_router(health_router)
    app.include_router(contacts_router)

    get_logger("app").info(
        "app.configured",
        extra={
            "campaign_mode": config.campaign_mode,
            "campaigns": stores.registry.campaign_ids(),
            "sendgrid_configured": bool(config.sendgrid_api_key),
        },
    )
    return app


def run() -> None:  # pragma: no cover - arranque manual
    """Levanta la API con uvicorn en el puerto configurado."""
    import uvicorn

    app = create_app()
    get_logger("app").info("server.starting", extra={"port": default_settings.port})
    uvicorn.run(app, host="0.0.0.0", port=default_settings.port, log_config=None)


if __name__ == "__main__":  # pragma: no cover
    run()
