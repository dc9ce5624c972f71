"""Endpoints de salud e información del servicio."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health", summary="Estado del servicio")
def healthcheck() -> dict[str, str]:
    """Payload estático para balanceadores y monitoreo."""
    return {"status": "ok"}


@router.get("/info", summary="Modo de campañas y campañas registradas")
def info(request: Request) -> dict[str, object]:
    service = request.app.state.batch_service
    return {
        "environment": request.app.state.settings.environment,
        "campaign_mode": "multi" if service.multi_campaign else "single",
        "campaigns": request.app.state.stores.registry.campaign_ids()
        if service.multi_campaign
        else [],
    }
