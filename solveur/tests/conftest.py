from __future__ import annotations

import os

# Settings are read at import time by the engine; point everything at local fakes first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["EMBEDDING_PROVIDER"] = "fake"
os.environ["VECTOR_PROVIDER"] = "memory"
os.environ["LLM_PROVIDER"] = "fake"
os.environ["AUTH_BCRYPT_ROUNDS"] = "4"
os.environ["AUTH_JWT_SECRET"] = "test-session-secret-with-enough-length"
os.environ["TENANT_ROOT_DOMAIN"] = "solveur.test"
os.environ["OPENAI_API_KEY"] = ""
os.environ["PINECONE_API_KEY"] = ""

import pytest
from httpx import ASGITransport, AsyncClient

from solveur.core.config import get_settings
from solveur.domain.models import Base
from solveur.persistence.db import SessionLocal, engine
from solveur.providers.llm.fake import FakeCompletionProvider
from solveur.providers.vectors.factory import reset_memory_index
from solveur.services.quota import reset_quota_service
from solveur.services.telemetry import reset_telemetry


@pytest.fixture(autouse=True)
async def database() -> None:
    # Fresh schema per test; the in-memory database lives on one shared connection.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Drop the connection too so the next test never reuses one bound to a closed loop.
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    # Clear caches and in-process singletons so tests never observe each other.
    get_settings.cache_clear()
    reset_memory_index()
    reset_quota_service()
    reset_telemetry()
    yield
    get_settings.cache_clear()
    reset_memory_index()
    reset_quota_service()
    reset_telemetry()


@pytest.fixture
async def session():
    async with SessionLocal() as db:
        yield db


@pytest.fixture
def completer() -> FakeCompletionProvider:
    return FakeCompletionProvider("Happy to help with that.")


@pytest.fixture
def app(completer: FakeCompletionProvider):
    from solveur.apps.api.main import create_app

    application = create_app()
    application.state.completer = completer
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
