"""Registro estático de campañas y su base de datos lógica."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType


class UnknownCampaignError(KeyError):
    """La campaña solicitada no está registrada."""

    def __init__(self, campaign_id: str | None) -> None:
        super().__init__(campaign_id)
        self.campaign_id = campaign_id

    def __str__(self) -> str:
        return f"Campaign '{self.campaign_id}' is not registered"


class CampaignRegistry(Mapping[str, str]):
    """Mapa inmutable campaña -> nombre de base de datos, definido al arrancar."""

    def __init__(self, campaigns: Mapping[str, str]) -> None:
        self._campaigns = MappingProxyType(dict(campaigns))

    def __getitem__(self, campaign_id: str) -> str:
        return self._campaigns[campaign_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._campaigns)

    def __len__(self) -> int:
        return len(self._campaigns)

    def resolve_store_name(self, campaign_id: str | None) -> str:
        """Devuelve la base de datos de la campaña o lanza `UnknownCampaignError`."""
        try:
            return self._campaigns[campaign_id]  # type: ignore[index]
        except KeyError as exc:
            raise UnknownCampaignError(campaign_id) from exc

    def campaign_ids(self) -> list[str]:
        return list(self._campaigns)
