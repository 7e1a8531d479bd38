"""Shared fixtures: a fresh app per test with Alice, Bob and Carol registered."""

from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from pair_chat.api.app import create_app
from pair_chat.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(env="development", log_level="WARNING")


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest_asyncio.fixture
async def people(app):
    users = app.state.chat_service.users
    return SimpleNamespace(
        alice=await users.create("alice@example.com", "Alice", user_id="1"),
        bob=await users.create("bob@example.com", "Bob", user_id="2"),
        carol=await users.create("carol@example.com", "Carol", user_id="3"),
    )


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
