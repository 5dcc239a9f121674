"""Test configuration and fixtures specifically for API testing."""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from labsync.web.api.app import api
from labsync.web.api.dependencies import get_request_date_provider, get_session_factory
from labsync.web.models import UserContact


@pytest.fixture
async def api_client(session_maker, date_provider) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the API bound to the test database.

    Requests go straight to the ASGI app, so the lifespan (and with it the
    production database) is never started.
    """
    api.dependency_overrides[get_session_factory] = lambda: session_maker
    api.dependency_overrides[get_request_date_provider] = lambda: date_provider

    try:
        async with AsyncClient(
            transport=ASGITransport(app=api),
            base_url="http://test"
        ) as client:
            yield client
    finally:
        api.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    """Headers identifying the acting user."""
    return {"X-User-Id": "alice"}


@pytest.fixture
def make_contacts(session_maker):
    """Create accepted contact relations."""
    async def _make_contacts(*pairs):
        async with session_maker() as session:
            for user_id, contact_id in pairs:
                session.add(UserContact(user_id=user_id, contact_id=contact_id, status="accepted"))
            await session.commit()

    return _make_contacts
