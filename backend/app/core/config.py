"""Configuración central basada en variables de entorno."""

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CAMPAIGNS: dict[str, str] = {
    "campaign1": "campaign1_db",
    "campaign2": "campaign2_db",
    "campaign3": "campaign3_db",
    "campaign4": "campaign4_db",
    "campaign5": "campaign5_db",
}


class Settings(BaseSettings):
    """Valores globales leídos desde `.env` o el entorno."""

    environment: str = "development"
    log_level: str | None = Field(
        default=None,
        description="Nivel de logging global (ej. debug, info, warning). Cuando no se define, usa un valor por ambiente.",
    )
    request_log_level: str = Field(
        default="info",
        description=(
            "Nivel mínimo para registrar solicitudes en middleware. "
            "Valores más altos (warning/error) reducen registros de peticiones exitosas."
        ),
    )
    request_log_skip_prefixes: tuple[str, ...] = Field(
        default=("/health", "/favicon", "/docs", "/openapi"),
        description="Prefijos de ruta para los que no se registrarán eventos de request.started/completed.",
    )
    log_file_path: str | None = Field(
        default=None,
        description="Archivo de log rotativo; sin valor sólo se escribe a stderr.",
    )
    port: int = Field(default=3000, validation_alias=AliasChoices("CONTACTS_PORT", "PORT"))

    mongo_uri: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CONTACTS_MONGO_URI", "MONGO_URI"),
        description="URI base del clúster MongoDB, sin nombre de base de datos.",
    )
    mongo_query: str = Field(
        default="retryWrites=true&w=majority",
        description="Parámetros de consulta agregados a la URI de cada campaña.",
    )
    campaign_mode: Literal["single", "multi"] = Field(
        default="multi",
        description="`multi` exige el header `campaign`; `single` usa una sola base.",
    )
    campaigns: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_CAMPAIGNS),
        description="Mapa campaña -> base de datos lógica (JSON en el entorno).",
    )
    single_database: str = Field(
        default="contacts_db",
        description="Base de datos usada cuando `campaign_mode` es `single`.",
    )
    contacts_collection: str = "contacts"

    sendgrid_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CONTACTS_SENDGRID_API_KEY", "SENDGRID_API_KEY"),
    )
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"
    mail_from_email: str = "info@on-demand.io"
    mail_from_name: str | None = "on-demand"
    notification_timeout_seconds: float = 10.0
    notification_concurrency: int = Field(
        default=10,
        ge=1,
        description="Máximo de envíos simultáneos por lote.",
    )
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="CONTACTS_", extra="allow", populate_by_name=True
    )


settings = Settings()
