"""Shared fixtures for the Fast Order test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from fast_order.core.config import Settings, get_settings
from fast_order.main import create_app
from fast_order.services.credentials import CredentialStore, TokenBundle, get_credential_store
from fast_order.services.qbo_client import (
    QuickBooksOAuthError,
    QuickBooksService,
    get_quickbooks_service,
)


TEST_ENV = {
    "QB_CLIENT_ID": "test-client-id",
    "QB_CLIENT_SECRET": "test-client-secret",
    "QB_ENVIRONMENT": "sandbox",
    "QB_REDIRECT_URI": "http://localhost:3000/auth/callback",
}


def make_tokens(access_token: str = "access-123", refresh_token: str = "refresh-456") -> TokenBundle:
    now = datetime.now(timezone.utc)
    return TokenBundle(
        access_token=access_token,
        refresh_token=refresh_token,
        access_expires_at=now + timedelta(hours=1),
        refresh_expires_at=now + timedelta(days=100),
        scopes=["com.intuit.quickbooks.accounting"],
    )


class FakeQuickBooksService(QuickBooksService):
    """Records every upstream call instead of talking to Intuit."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.queries: list[dict[str, Any]] = []
        self.created: list[dict[str, Any]] = []
        self.exchanges: list[dict[str, Any]] = []
        self.query_result: dict[str, Any] = {"QueryResponse": {}}
        self.query_error: Optional[Exception] = None
        self.create_result: dict[str, Any] = {"Id": "101", "DocNumber": "1001", "TotalAmt": 59.97}
        self.create_error: Optional[Exception] = None
        self.exchange_error: Optional[QuickBooksOAuthError] = None

    async def query(self, connection, *, entity, select_sql, maxresults=None):
        self.queries.append(
            {
                "realm_id": connection.realm_id,
                "entity": entity,
                "select_sql": select_sql,
                "maxresults": maxresults,
            }
        )
        if self.query_error is not None:
            raise self.query_error
        return self.query_result, 1.5

    async def create(self, connection, *, entity, resource, payload):
        self.created.append(
            {
                "realm_id": connection.realm_id,
                "entity": entity,
                "resource": resource,
                "payload": payload,
            }
        )
        if self.create_error is not None:
            raise self.create_error
        return self.create_result, 2.5, 200

    async def exchange_authorization_code(self, *, code, realm_id):
        self.exchanges.append({"code": code, "realm_id": realm_id})
        if self.exchange_error is not None:
            raise self.exchange_error
        return make_tokens()


@pytest.fixture
def settings(monkeypatch) -> Settings:
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    for key in ("QB_REALM_ID", "PORT", "LOG_LEVEL", "HTTP_TIMEOUT_SECONDS"):
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore()


@pytest.fixture
def connected_store(store: CredentialStore) -> CredentialStore:
    store.put("123", make_tokens())
    return store


@pytest.fixture
def fake_qbo(settings: Settings) -> FakeQuickBooksService:
    return FakeQuickBooksService(settings)


@pytest.fixture
def app(settings: Settings, store: CredentialStore, fake_qbo: FakeQuickBooksService):
    application = create_app()
    application.dependency_overrides[get_credential_store] = lambda: store
    application.dependency_overrides[get_quickbooks_service] = lambda: fake_qbo
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
