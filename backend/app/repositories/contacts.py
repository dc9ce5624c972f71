"""Acceso a la colección `contacts` de una campaña en MongoDB."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from app.core.logging import get_logger
from app.models.contact import ContactRecord

logger = get_logger(__name__)

DUPLICATE_KEY_CODE = 11000


class ContactRepositoryError(RuntimeError):
    """Errores de MongoDB distintos a una violación de unicidad."""


class DuplicateContactError(ContactRepositoryError):
    """El lote chocó contra el índice único de `email` sin insertar nada."""


@dataclass(slots=True)
class ContactRepository:
    """Colección `contacts` ligada al esquema de `ContactRecord`."""

    collection: AsyncCollection
    campaign_id: str | None = None

    async def ensure_indexes(self) -> None:
        """Crea el índice único sobre `email` si todavía no existe."""
        try:
            await self.collection.create_index(
                [("email", ASCENDING)], unique=True, name="email_unique"
            )
        except PyMongoError as exc:
            logger.exception(
                "mongo.index_failed", extra={"campaign": self.campaign_id, "error": str(exc)}
            )
            raise ContactRepositoryError(f"No se pudo crear el índice de email: {exc}") from exc

    async def find_existing_emails(self, emails: Iterable[str]) -> set[str]:
        """Devuelve el subconjunto de `emails` que ya está guardado."""
        candidates = list(emails)
        if not candidates:
            return set()
        try:
            cursor = self.collection.find(
                {"email": {"$in": candidates}}, projection={"email": True, "_id": False}
            )
            return {doc["email"] async for doc in cursor if doc.get("email")}
        except PyMongoError as exc:
            raise ContactRepositoryError(f"Error al consultar contactos: {exc}") from exc

    async def insert_unordered(self, records: Sequence[ContactRecord]) -> list[ContactRecord]:
        """Inserta el lote con `ordered=False` y devuelve los registros que quedaron guardados.

        Los duplicados por carrera con otro request se toleran: sólo se descartan
        esos registros. Si ninguno entró se lanza `DuplicateContactError`; cualquier
        otro error de escritura se propaga como `ContactRepositoryError`.
        """
        if not records:
            return []
        documents = [record.to_document() for record in records]
        try:
            await self.collection.insert_many(documents, ordered=False)
        except BulkWriteError as exc:
            return self._partial_insert(records, exc.details)
        except DuplicateKeyError as exc:
            raise DuplicateContactError(str(exc)) from exc
        except PyMongoError as exc:
            raise ContactRepositoryError(f"Error al insertar contactos: {exc}") from exc
        return list(records)

    def _partial_insert(
        self, records: Sequence[ContactRecord], details: dict[str, Any]
    ) -> list[ContactRecord]:
        write_errors = details.get("writeErrors") or []
        unexpected = [err for err in write_errors if err.get("code") != DUPLICATE_KEY_CODE]
        if unexpected or details.get("writeConcernErrors"):
            logger.error(
                "contacts.insert_failed",
                extra={"campaign": self.campaign_id, "errors": unexpected or write_errors},
            )
            raise ContactRepositoryError("Error al insertar contactos en lote")

        failed = {err.get("index") for err in write_errors}
        inserted = [record for index, record in enumerate(records) if index not in failed]
        logger.warning(
            "contacts.duplicates_skipped",
            extra={
                "campaign": self.campaign_id,
                "skipped": len(failed),
                "inserted": len(inserted),
            },
        )
        if not inserted:
            raise DuplicateContactError("Todos los contactos del lote ya existían")
        return inserted
