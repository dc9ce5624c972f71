"""Endpoint de alta por lote de contactos únicos por campaña."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse

from app.api.deps import get_batch_service
from app.api.schemas.contacts import ErrorResponse, UniqueEmailsRequest, UniqueEmailsResponse
from app.core.logging import get_logger
from app.repositories.contacts import DuplicateContactError
from app.services.contact_batches import ContactBatchService, ContactBatchValidationError

logger = get_logger("app.contacts")

router = APIRouter(tags=["contacts"])


@router.post(
    "/get-unique-emails",
    response_model=UniqueEmailsResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse},
        201: {"description": "El lote chocó con una inserción concurrente; cuerpo `[]`."},
        500: {"model": ErrorResponse},
    },
    summary="Inserta los contactos nuevos de la campaña y les envía un correo",
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": UniqueEmailsRequest.model_json_schema()}}
        }
    },
)
async def post_unique_emails(
    request: Request,
    user_id: str | None = Header(default=None, convert_underscores=False),
    conversation_id: str | None = Header(default=None, convert_underscores=False),
    campaign: str | None = Header(default=None),
    service: ContactBatchService = Depends(get_batch_service),
):
    """Filtra emails ya registrados, inserta el resto y notifica a cada nuevo contacto."""
    body = UniqueEmailsRequest.from_body(await _read_json(request))
    try:
        result = await service.handle_batch(
            campaign_id=campaign,
            user_id=user_id,
            conversation_id=conversation_id,
            contacts=body.contacts,
            subject=body.subject,
            text=body.text,
        )
    except ContactBatchValidationError as exc:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})
    except DuplicateContactError as exc:
        logger.warning("contacts.duplicate_race", extra={"campaign": campaign, "error": str(exc)})
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=[])
    except Exception:
        logger.exception("contacts.batch_failed", extra={"campaign": campaign})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )
    return JSONResponse(content=result.as_payload())


async def _read_json(request: Request) -> object | None:
    """Lee el cuerpo sin validar; JSON vacío o mal formado se trata como ausente."""
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
