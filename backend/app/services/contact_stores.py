"""Enrutamiento de campañas a su base MongoDB con caché de conexiones y colecciones."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from app.campaigns.registry import CampaignRegistry
from app.core.logging import get_logger, log_event
from app.core.security import mask_uri
from app.repositories.contacts import ContactRepository

logger = get_logger(__name__)

ClientFactory = Callable[[str], Any]


def build_campaign_uri(base_uri: str, store_name: str, query: str | None = None) -> str:
    """`<base>/<store_name>?<query>`; la base no debe incluir nombre de base de datos."""
    uri = f"{base_uri.rstrip('/')}/{store_name}"
    return f"{uri}?{query}" if query else uri


def database_from_uri(uri: str) -> str | None:
    """Nombre de base incluido en la URI (`mongodb://host/<db>?...`), si lo hay."""
    return urlsplit(uri).path.strip("/") or None


def _default_client_factory(uri: str) -> AsyncMongoClient:
    return AsyncMongoClient(uri, tz_aware=True)


class ContactStores:
    """Mantiene un cliente y un repositorio de contactos por campaña durante la vida del proceso.

    El cliente se crea de forma síncrona en la primera llamada, así dos requests
    concurrentes nunca abren dos conexiones para la misma campaña. El repositorio
    necesita crear el índice único (operación asíncrona), por lo que su
    construcción es single-flight: quien llega mientras otro lo prepara espera
    el mismo future.

    Con `shared_uri=True` (modo single) la URI se usa tal cual y la base es la
    que nombra la URI o, si no nombra ninguna, la del registro.
    """

    def __init__(
        self,
        registry: CampaignRegistry,
        *,
        base_uri: str,
        query: str | None = None,
        collection_name: str = "contacts",
        client_factory: ClientFactory | None = None,
        shared_uri: bool = False,
    ) -> None:
        self.registry = registry
        self._base_uri = base_uri
        self._query = query
        self._collection_name = collection_name
        self._client_factory = client_factory or _default_client_factory
        self._shared_uri = shared_uri
        self._connections: dict[str, Any] = {}
        self._repositories: dict[str, ContactRepository] = {}
        self._pending: dict[str, asyncio.Future[ContactRepository]] = {}
        self._background: set[asyncio.Task[None]] = set()

    def database_name(self, campaign_id: str) -> str:
        store_name = self.registry.resolve_store_name(campaign_id)
        if self._shared_uri:
            return database_from_uri(self._base_uri) or store_name
        return store_name

    def get_connection(self, campaign_id: str) -> Any:
        """Retorna el cliente cacheado de la campaña, creándolo en el primer uso."""
        database = self.database_name(campaign_id)
        client = self._connections.get(campaign_id)
        if client is not None:
            return client

        if self._shared_uri:
            uri = self._base_uri
        else:
            uri = build_campaign_uri(self._base_uri, database, self._query)
        client = self._client_factory(uri)
        self._connections[campaign_id] = client
        log_event(
            logger,
            "mongo.connection_created",
            campaign=campaign_id,
            database=database,
            uri=mask_uri(uri),
        )
        self._watch_connection(campaign_id, client)
        return client

    async def get_contacts(self, campaign_id: str) -> ContactRepository:
        """Retorna el repositorio `contacts` de la campaña (cacheado, single-flight)."""
        while True:
            repository = self._repositories.get(campaign_id)
            if repository is not None:
                return repository

            pending = self._pending.get(campaign_id)
            if pending is None:
                return await self._create_contacts(campaign_id)
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # Se canceló quien inicializaba, no este request: se reintenta.

    async def _create_contacts(self, campaign_id: str) -> ContactRepository:
        database = self.database_name(campaign_id)
        future: asyncio.Future[ContactRepository] = asyncio.get_running_loop().create_future()
        self._pending[campaign_id] = future
        try:
            client = self.get_connection(campaign_id)
            repository = ContactRepository(
                collection=client[database][self._collection_name],
                campaign_id=campaign_id,
            )
            await repository.ensure_indexes()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Evita "exception was never retrieved" cuando nadie más esperaba.
            future.exception()
            raise
        else:
            self._repositories[campaign_id] = repository
            future.set_result(repository)
            return repository
        finally:
            self._pending.pop(campaign_id, None)

    def connection_count(self) -> int:
        return len(self._connections)

    def _watch_connection(self, campaign_id: str, client: Any) -> None:
        """Lanza un ping en segundo plano que sólo registra el resultado."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._ping(campaign_id, client))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    async def _ping(campaign_id: str, client: Any) -> None:
        try:
            await client.admin.command("ping")
        except PyMongoError as exc:
            logger.error(
                "mongo.connection_error", extra={"campaign": campaign_id, "error": str(exc)}
            )
            return
        log_event(logger, "mongo.connected", campaign=campaign_id)
