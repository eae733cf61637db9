# tests/conftest.py
"""
Shared fixtures for reconciler tests
"""

import pytest
import pytest_asyncio

from services.reconciler.app.config import ReconcilerSettings
from services.reconciler.app.connectors.base import OAuthCredentials
from services.reconciler.app.connectors.token_store import TokenStore
from services.reconciler.app.connectors.zoho_books import ZohoBooksClient

from .fakes import ACCOUNTS_URL, BOOKS_URL, ORGANIZATION_ID, FakeZoho


@pytest.fixture
def fake_zoho() -> FakeZoho:
    return FakeZoho()


@pytest.fixture
def credentials() -> OAuthCredentials:
    return OAuthCredentials(
        access_token="stale-token",
        refresh_token="refresh-123",
        client_id="client-abc",
        client_secret="secret-xyz"
    )


@pytest.fixture
def settings() -> ReconcilerSettings:
    return ReconcilerSettings(
        ZOHO_ACCESS_TOKEN="stale-token",
        ZOHO_REFRESH_TOKEN="refresh-123",
        ZOHO_CLIENT_ID="client-abc",
        ZOHO_CLIENT_SECRET="secret-xyz",
        ZOHO_ORGANIZATION_ID=ORGANIZATION_ID,
        ZOHO_API_BASE_URL=BOOKS_URL,
        ZOHO_ACCOUNTS_URL=ACCOUNTS_URL
    )


@pytest_asyncio.fixture
async def http_client(fake_zoho):
    async with fake_zoho.client() as client:
        yield client


@pytest.fixture
def token_store(credentials, http_client) -> TokenStore:
    return TokenStore(credentials, ACCOUNTS_URL, http_client)


@pytest.fixture
def zoho_client(token_store, http_client) -> ZohoBooksClient:
    return ZohoBooksClient(
        base_url=BOOKS_URL,
        organization_id=ORGANIZATION_ID,
        token_store=token_store,
        http_client=http_client
    )
