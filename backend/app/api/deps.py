"""Dependencias compartidas por las rutas de la API."""

from fastapi import Request

from app.services.contact_batches import ContactBatchService


def get_batch_service(request: Request) -> ContactBatchService:
    """Devuelve el pipeline creado por `create_app` y guardado en `app.state`."""
    return request.app.state.batch_service
