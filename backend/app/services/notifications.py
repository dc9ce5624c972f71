"""Envío de correos de bienvenida vía la API REST v3 de SendGrid."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.logging import get_logger, log_event
from app.models.contact import ContactSummary

logger = get_logger(__name__)


class NotificationError(RuntimeError):
    """Falla al enviar un correo individual."""


@dataclass(slots=True)
class DispatchReport:
    """Conteo de envíos de un lote; sólo se usa para logging."""

    sent: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.sent + self.failed


class NotificationDispatcher:
    """Envía un correo por destinatario, en paralelo, sin propagar fallas."""

    def __init__(
        self,
        *,
        api_key: str | None,
        from_email: str,
        from_name: str | None = None,
        api_url: str = "https://api.sendgrid.com/v3/mail/send",
        timeout: float = 10.0,
        concurrency: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._from_email = from_email
        self._from_name = from_name
        self._api_url = api_url
        self._timeout = timeout
        self._concurrency = max(1, concurrency)
        self._transport = transport

    async def dispatch_all(
        self,
        recipients: Sequence[ContactSummary],
        subject: str | None,
        text: str | None,
        *,
        campaign_id: str | None = None,
    ) -> DispatchReport:
        """Intenta un envío por destinatario y espera a que todos terminen."""
        report = DispatchReport()
        if not recipients:
            return report

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _guarded(client: httpx.AsyncClient, recipient: ContactSummary) -> None:
            address = recipient.email.lower()
            async with semaphore:
                try:
                    await self.send(client, address, subject, text)
                except NotificationError as exc:
                    report.failed += 1
                    logger.error(
                        "notifications.failed",
                        extra={"to": address, "campaign": campaign_id, "error": str(exc)},
                    )
                    return
                except Exception as exc:  # URL o headers mal configurados, etc.
                    report.failed += 1
                    logger.exception(
                        "notifications.failed",
                        extra={"to": address, "campaign": campaign_id, "error": repr(exc)},
                    )
                    return
            report.sent += 1
            log_event(logger, "notifications.sent", to=address, campaign=campaign_id)

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            await asyncio.gather(*(_guarded(client, recipient) for recipient in recipients))

        log_event(
            logger,
            "notifications.batch_completed",
            level=logging.WARNING if report.failed else logging.INFO,
            campaign=campaign_id,
            sent=report.sent,
            failed=report.failed,
        )
        return report

    async def send(
        self,
        client: httpx.AsyncClient,
        to: str,
        subject: str | None,
        text: str | None,
    ) -> None:
        """Envía un correo; el HTML es el mismo texto sin escapar."""
        if not self._api_key:
            raise NotificationError("SENDGRID_API_KEY no configurada")

        body = text or ""
        try:
            response = await client.post(
                self._api_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=self._payload(to, subject or "", body),
            )
        except httpx.HTTPError as exc:
            raise NotificationError(f"Error de red al enviar a {to}: {exc}") from exc

        if response.status_code >= 400:
            raise NotificationError(
                f"SendGrid respondió {response.status_code}: {response.text}"
            )

    def _payload(self, to: str, subject: str, body: str) -> dict[str, Any]:
        sender: dict[str, str] = {"email": self._from_email}
        if self._from_name:
            sender["name"] = self._from_name
        return {
            "personalizations": [{"to": [{"email": to}]}],
            "from": sender,
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": body},
                {"type": "text/html", "value": body},
            ],
        }
