"""Modelos del documento `contacts` almacenado por campaña."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SCALARS = (str, int, float, bool)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContactEnrichment(BaseModel):
    """Campos opcionales de enriquecimiento; se guardan con sus nombres originales."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(default="", alias="Title")
    firm: str = Field(default="", alias="Firm")
    country: str = Field(default="", alias="Country")
    linkedin_url: str = Field(default="", alias="LinkedIn URL")

    @field_validator("title", "firm", "country", "linkedin_url", mode="before")
    @classmethod
    def text_or_empty(cls, value: Any) -> Any:
        """`null` vuelve al default y los escalares se guardan como texto."""
        if value is None:
            return ""
        return str(value) if isinstance(value, _SCALARS) else value


class ContactInput(ContactEnrichment):
    """Contacto tal como llega en el payload; los campos desconocidos se descartan."""

    email: str = Field(..., min_length=1)
    name: str | None = None
    company: str | None = None

    @field_validator("name", "company", mode="before")
    @classmethod
    def text_or_none(cls, value: Any) -> Any:
        return str(value) if isinstance(value, _SCALARS) else value


class ContactRecord(ContactInput):
    """Documento persistido: contacto + identidad del request + fecha de alta."""

    user_id: str
    conversation_id: str
    created_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_input(
        cls, contact: ContactInput, *, user_id: str, conversation_id: str
    ) -> ContactRecord:
        return cls(
            **contact.model_dump(by_alias=True),
            user_id=user_id,
            conversation_id=conversation_id,
        )

    def to_document(self) -> dict[str, Any]:
        """Serializa con los alias (`Title`, `LinkedIn URL`, ...) que usa la colección."""
        return self.model_dump(by_alias=True)


class ContactSummary(BaseModel):
    """Proyección `{name, email, company}` de un contacto insertado."""

    name: str | None = None
    email: str
    company: str | None = None
