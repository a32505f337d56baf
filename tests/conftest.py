"""
Shared fixtures.

Tests run against an in-memory SQLite database and a fake Gemini
model; no network calls are made.
"""

import asyncio
import json
from types import SimpleNamespace

import pytest

from pocketbook.agents import InvoiceExtractionAgent
from pocketbook.config import AppSettings, GeminiSettings
from pocketbook.models.invoice import Identity
from pocketbook.orchestrator import create_app_components
from pocketbook.storage import (
    Database,
    SqlAuditStorage,
    SqlInvoiceStorage,
    SqlPocketStorage,
    SqlUserStorage,
)
from pocketbook.storage.tables import UserRow


MILK_AND_BREAD = {
    "summary": "Belanja Susu dan Roti",
    "date": "2024-05-01",
    "totalAmount": 25,
    "items": [
        {
            "name": "Milk 2L",
            "quantity": 1,
            "unitPrice": 15,
            "totalPrice": 15,
            "category": "Sembako",
        },
        {
            "name": "Bread",
            "quantity": 1,
            "unitPrice": 10,
            "totalPrice": 10,
            "category": "Sembako",
        },
    ],
}

NASI_GORENG = {
    "summary": "Makan Siang di Warung",
    "date": "2024-05-03",
    "totalAmount": 15000,
    "items": [
        {
            "name": "Nasi Goreng",
            "quantity": 1,
            "unitPrice": 15000,
            "totalPrice": 15000,
            "category": "Makan & Minum",
        },
    ],
}


class FakeGeminiModel:
    """
    Stands in for genai.GenerativeModel.

    Answers with the queued payloads in order (the last one repeats).
    A payload that is an exception instance is raised instead.
    """

    def __init__(self, *payloads, delay: float = 0.0):
        self.payloads = list(payloads) or [json.dumps(MILK_AND_BREAD)]
        self.delay = delay
        self.calls: list = []
        self.system_instructions: list[str] = []

    def factory(self, system_instruction: str) -> "FakeGeminiModel":
        self.system_instructions.append(system_instruction)
        return self

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.delay:
            await asyncio.sleep(self.delay)

        payload = self.payloads[min(len(self.calls), len(self.payloads)) - 1]
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        return SimpleNamespace(text=payload)


def make_agent(model: FakeGeminiModel, timeout: float = 5.0) -> InvoiceExtractionAgent:
    return InvoiceExtractionAgent(
        settings=GeminiSettings(api_key="test-key", request_timeout_seconds=timeout),
        model_factory=model.factory,
    )


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.init_db()
    with db.session_scope() as session:
        session.add_all([
            UserRow(id="alice", name="Alice", email="alice@example.com", currency="IDR"),
            UserRow(id="bob", name="Bob", email="bob@example.com"),
            UserRow(id="carol", name="Carol", email="carol@example.com"),
        ])
    yield db
    db.dispose()


@pytest.fixture
def alice():
    return Identity(user_id="alice", name="Alice", email="alice@example.com", currency="IDR")


@pytest.fixture
def bob():
    return Identity(user_id="bob", name="Bob", email="bob@example.com")


@pytest.fixture
def carol():
    return Identity(user_id="carol", name="Carol", email="carol@example.com")


@pytest.fixture
def invoice_storage(database):
    return SqlInvoiceStorage(database)


@pytest.fixture
def pocket_storage(database):
    return SqlPocketStorage(database)


@pytest.fixture
def user_storage(database):
    return SqlUserStorage(database)


@pytest.fixture
def audit_storage(database):
    return SqlAuditStorage(database)


@pytest.fixture
def fake_model():
    return FakeGeminiModel()


@pytest.fixture
def components(database, fake_model):
    return create_app_components(database=database, agent=make_agent(fake_model))
