"""Fixtures compartidas para las pruebas."""

from __future__ import annotations

from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from pymongo.errors import BulkWriteError

from app.campaigns.registry import CampaignRegistry
from app.core.config import Settings
from app.main import create_app
from app.models.contact import ContactSummary
from app.services.contact_stores import ContactStores
from app.services.notifications import DispatchReport

TEST_CAMPAIGNS = {"campaign1": "campaign1_db", "campaign2": "campaign2_db"}


class FakeCursor:
    """Cursor asíncrono mínimo sobre una lista de documentos."""

    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self._docs = list(docs)

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict[str, Any]:
        if not self._docs:
            raise StopAsyncIteration
        return self._docs.pop(0)


class FakeCollection:
    """Colección en memoria con índice único sobre `email`."""

    def __init__(self) -> None:
        self.docs: list[dict[str, Any]] = []
        self.indexes: list[dict[str, Any]] = []
        self.insert_calls: list[list[dict[str, Any]]] = []
        self.find_calls: list[dict[str, Any]] = []
        # Emails que "otro request" inserta justo antes de nuestro insert_many.
        self.race_emails: set[str] = set()
        self.insert_error: Exception | None = None

    async def create_index(self, keys, **kwargs) -> str:
        self.indexes.append({"keys": keys, **kwargs})
        return kwargs.get("name", "index")

    def find(self, filter: dict[str, Any], projection: Any = None) -> FakeCursor:
        self.find_calls.append(filter)
        wanted = set(filter["email"]["$in"])
        return FakeCursor([{"email": d["email"]} for d in self.docs if d["email"] in wanted])

    async def insert_many(self, documents: list[dict[str, Any]], ordered: bool = True):
        self.insert_calls.append(list(documents))
        if self.insert_error is not None:
            raise self.insert_error
        for email in self.race_emails:
            if not self.emails_contain(email):
                self.docs.append({"email": email})
        errors = []
        for index, doc in enumerate(documents):
            if self.emails_contain(doc["email"]):
                errors.append({"index": index, "code": 11000, "errmsg": "E11000 duplicate key"})
                continue
            self.docs.append(dict(doc))
        if errors:
            raise BulkWriteError(
                {
                    "writeErrors": errors,
                    "writeConcernErrors": [],
                    "nInserted": len(documents) - len(errors),
                }
            )

    def emails_contain(self, email: str) -> bool:
        return any(d["email"] == email for d in self.docs)

    def emails(self) -> list[str]:
        return [d["email"] for d in self.docs]


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


class FakeAdmin:
    def __init__(self) -> None:
        self.commands: list[str] = []

    async def command(self, name: str) -> dict[str, int]:
        self.commands.append(name)
        return {"ok": 1}


class FakeMongoClient:
    def __init__(self, uri: str) -> None:
        self.uri = uri
        self.admin = FakeAdmin()
        self.databases: dict[str, FakeDatabase] = {}

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.databases.setdefault(name, FakeDatabase())


class FakeClientFactory:
    """Registra cada cliente creado para verificar el caché por campaña."""

    def __init__(self) -> None:
        self.clients: list[FakeMongoClient] = []

    def __call__(self, uri: str) -> FakeMongoClient:
        client = FakeMongoClient(uri)
        self.clients.append(client)
        return client

    @property
    def uris(self) -> list[str]:
        return [client.uri for client in self.clients]


class RecordingDispatcher:
    """Sustituto de `NotificationDispatcher` que sólo guarda las llamadas."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def dispatch_all(
        self,
        recipients: list[ContactSummary],
        subject: str | None,
        text: str | None,
        *,
        campaign_id: str | None = None,
    ) -> DispatchReport:
        self.calls.append(
            {
                "recipients": list(recipients),
                "subject": subject,
                "text": text,
                "campaign_id": campaign_id,
            }
        )
        return DispatchReport(sent=len(recipients))

    @property
    def recipients(self) -> list[str]:
        return [r.email for call in self.calls for r in call["recipients"]]


@pytest.fixture(name="client_factory")
def fixture_client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture(name="dispatcher")
def fixture_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture(name="test_settings")
def fixture_test_settings() -> Settings:
    return Settings(
        _env_file=None,
        mongo_uri="mongodb://mongo.test:27017",
        campaigns=TEST_CAMPAIGNS,
        campaign_mode="multi",
        environment="test",
    )


@pytest.fixture(name="stores")
def fixture_stores(client_factory: FakeClientFactory) -> ContactStores:
    return ContactStores(
        CampaignRegistry(TEST_CAMPAIGNS),
        base_uri="mongodb://mongo.test:27017",
        query="retryWrites=true&w=majority",
        client_factory=client_factory,
    )


@pytest.fixture(name="async_client")
async def fixture_async_client(
    test_settings: Settings, stores: ContactStores, dispatcher: RecordingDispatcher
) -> AsyncClient:
    """Cliente asíncrono contra una app con MongoDB y SendGrid sustituidos."""
    app = create_app(test_settings, stores=stores, dispatcher=dispatcher)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(name="campaign_collection")
def fixture_campaign_collection(stores: ContactStores):
    """Devuelve la colección en memoria de una campaña (crea su cliente si hace falta)."""

    def _collection(campaign_id: str) -> FakeCollection:
        client = stores.get_connection(campaign_id)
        return client[stores.registry.resolve_store_name(campaign_id)]["contacts"]

    return _collection
