"""Esquemas del endpoint `/get-unique-emails`."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class UniqueEmailsRequest(BaseModel):
    """Cuerpo del request.

    Nada aquí puede fallar: `contacts` se recibe sin tipar y `subject`/`text`
    se normalizan, así la validación de headers siempre ocurre antes y los
    errores se responden con el formato `{"error": ...}`.
    """

    contacts: Any = Field(default=None, description="Lista de contactos, cada uno con `email`.")
    subject: str | None = Field(default=None, description="Asunto del correo de bienvenida.")
    text: str | None = Field(
        default=None, description="Cuerpo del correo; se usa también como HTML."
    )

    @field_validator("subject", "text", mode="before")
    @classmethod
    def scalar_as_text(cls, value: Any) -> str | None:
        if isinstance(value, (str, int, float, bool)):
            return str(value)
        return None

    @classmethod
    def from_body(cls, body: Any) -> UniqueEmailsRequest:
        """Un cuerpo ausente, inválido o que no es objeto equivale a uno vacío."""
        if not isinstance(body, dict):
            return cls()
        return cls.model_validate(body)


class UniqueEmailsResponse(BaseModel):
    """Resumen devuelto con status 200."""

    message: str
    campaign: str | None = None
    inserted: int | None = None


class ErrorResponse(BaseModel):
    error: str
