"""Pipeline de alta de contactos: valida, deduplica, inserta y notifica."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from app.core.logging import get_logger, log_event
from app.models.contact import ContactInput, ContactRecord, ContactSummary
from app.repositories.contacts import ContactRepository
from app.services.contact_stores import ContactStores
from app.services.notifications import DispatchReport

logger = get_logger(__name__)

MISSING_CAMPAIGN = "Missing campaign header"
MISSING_IDENTITY = "Missing user_id or conversation_id in headers"
INVALID_CAMPAIGN = "Invalid campaign! Please enter the correct campaign."
MISSING_CONTACTS = "Request must include an array of contacts"
INVALID_CONTACT = "Each contact must include an email"
INVALID_CONTACT_FIELDS = "Contact fields must be text values"


class ContactBatchValidationError(ValueError):
    """Request inválido; se responde 400 sin tocar la base."""


class Dispatcher(Protocol):
    async def dispatch_all(
        self,
        recipients: list[ContactSummary],
        subject: str | None,
        text: str | None,
        *,
        campaign_id: str | None = None,
    ) -> DispatchReport: ...


@dataclass(slots=True)
class BatchResult:
    """Resultado que el router serializa tal cual."""

    message: str
    campaign: str | None = None
    inserted: int | None = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.campaign is not None:
            payload["campaign"] = self.campaign
        if self.inserted is not None:
            payload["inserted"] = self.inserted
        return payload


class ContactBatchService:
    """Orquesta el alta de un lote de contactos en la base de su campaña.

    En modo `single` no se espera header `campaign` y todo va a `default_campaign`.
    """

    def __init__(
        self,
        stores: ContactStores,
        dispatcher: Dispatcher,
        *,
        multi_campaign: bool = True,
        default_campaign: str | None = None,
    ) -> None:
        if not multi_campaign and default_campaign is None:
            raise ValueError("default_campaign es obligatorio en modo single")
        self._stores = stores
        self._dispatcher = dispatcher
        self._multi_campaign = multi_campaign
        self._default_campaign = default_campaign

    @property
    def multi_campaign(self) -> bool:
        return self._multi_campaign

    async def handle_batch(
        self,
        *,
        campaign_id: str | None,
        user_id: str | None,
        conversation_id: str | None,
        contacts: Any,
        subject: str | None,
        text: str | None,
    ) -> BatchResult:
        campaign, contact_inputs = self._validate(
            campaign_id=campaign_id,
            user_id=user_id,
            conversation_id=conversation_id,
            contacts=contacts,
        )

        unique_inputs = _unique_by_email(contact_inputs)
        repository: ContactRepository = await self._stores.get_contacts(campaign)
        existing = await repository.find_existing_emails(c.email for c in unique_inputs)

        new_records = [
            ContactRecord.from_input(
                c, user_id=user_id or "", conversation_id=conversation_id or ""
            )
            for c in unique_inputs
            if c.email not in existing
        ]
        if not new_records:
            log_event(
                logger,
                "contacts.all_existing",
                campaign=campaign,
                received=len(contact_inputs),
            )
            return BatchResult(
                message=self._already_exist_message(), campaign=self._echo(campaign)
            )

        inserted = await repository.insert_unordered(new_records)
        summaries = [
            ContactSummary(name=record.name, email=record.email, company=record.company)
            for record in inserted
        ]
        log_event(
            logger,
            "contacts.inserted",
            campaign=campaign,
            inserted=len(summaries),
            received=len(contact_inputs),
            existing=len(existing),
        )

        await self._dispatcher.dispatch_all(summaries, subject, text, campaign_id=campaign)

        return BatchResult(
            message=self._processed_message(campaign),
            campaign=self._echo(campaign),
            inserted=len(summaries),
        )

    def _validate(
        self,
        *,
        campaign_id: str | None,
        user_id: str | None,
        conversation_id: str | None,
        contacts: Any,
    ) -> tuple[str, list[ContactInput]]:
        if self._multi_campaign and not campaign_id:
            raise ContactBatchValidationError(MISSING_CAMPAIGN)
        if not user_id or not conversation_id:
            raise ContactBatchValidationError(MISSING_IDENTITY)
        if self._multi_campaign:
            if campaign_id not in self._stores.registry:
                raise ContactBatchValidationError(INVALID_CAMPAIGN)
            campaign = campaign_id
        else:
            campaign = self._default_campaign
        if not isinstance(contacts, list) or not contacts:
            raise ContactBatchValidationError(MISSING_CONTACTS)

        try:
            parsed = [ContactInput.model_validate(item) for item in contacts]
        except ValidationError as exc:
            raise ContactBatchValidationError(_contact_error_message(exc)) from exc
        return campaign, parsed  # type: ignore[return-value]

    def _echo(self, campaign: str) -> str | None:
        return campaign if self._multi_campaign else None

    def _already_exist_message(self) -> str:
        if self._multi_campaign:
            return "These emails already exist in this campaign."
        return "These emails already exist."

    def _processed_message(self, campaign: str) -> str:
        if self._multi_campaign:
            return f"Successfully processed for campaign: {campaign}"
        return "Successfully processed"


def _unique_by_email(contacts: list[ContactInput]) -> list[ContactInput]:
    """Conserva la primera aparición de cada email, en el orden recibido."""
    seen: set[str] = set()
    unique: list[ContactInput] = []
    for contact in contacts:
        if contact.email in seen:
            continue
        seen.add(contact.email)
        unique.append(contact)
    return unique


def _contact_error_message(exc: ValidationError) -> str:
    """Sólo los errores de `email` (o un contacto que no es objeto) se reportan como tales."""
    for error in exc.errors():
        loc = error.get("loc") or ()
        if not loc or loc[0] == "email":
            return INVALID_CONTACT
    return INVALID_CONTACT_FIELDS
