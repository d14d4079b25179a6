# tests/conftest.py
import os

# Settings are read at import time; pin them before the app is imported
os.environ.update({
    "PROJECT_NAME": "Atlas Core Test",
    "LOG_LEVEL": "DEBUG",
    "MONGODB_URI": "mongodb://localhost:27017/atlas_test",
    "JWT_SECRET": "test-secret-key",
    "DEMO_MODE": "false",
    "DISABLED_MODULES": "[]",
    "APP_TIMEZONE": "America/La_Paz",
    "APP_URL": "http://atlas.test",
    "FRONTEND_ORIGIN": "http://localhost:3000",
})
for _key in ("OPENAI_API_KEY", "OPENCAGE_API_KEY", "WHATSAPP_API_TOKEN", "WHATSAPP_PHONE_NUMBER_ID"):
    os.environ.pop(_key, None)

from typing import Any, AsyncGenerator, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from atlas_core.core.config import settings
from atlas_core.core.database import create_indexes, get_database
from atlas_core.core.repository import new_id, utcnow
from atlas_core.core.security import create_session_token, get_password_hash
from atlas_core.main import app
from atlas_core.modules.people.login_index import login_index_support


@pytest.fixture(autouse=True)
def reset_login_index_support():
    login_index_support.reset()
    yield
    login_index_support.reset()


@pytest_asyncio.fixture(scope="function")
async def db_client() -> AsyncGenerator[Any, None]:
    client = AsyncMongoMockClient()
    db = client[f"test_atlas_{os.urandom(4).hex()}"]
    await create_indexes(db)
    yield db


@pytest_asyncio.fixture(scope="function")
async def test_client(db_client) -> AsyncGenerator[AsyncClient, None]:
    async def _override_database():
        return db_client

    app.dependency_overrides[get_database] = _override_database
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


async def insert_person(db, fenix_role: str = "ADMIN", **fields) -> Dict[str, Any]:
    """Stores a person the way the users module does and returns it with `id`."""
    person = {
        "_id": new_id(),
        "full_name": fields.pop("full_name", f"Test {fenix_role.title()}"),
        "username": fields.pop("username", f"user_{os.urandom(3).hex()}"),
        "fenix_role": fenix_role,
        "role": fenix_role,
        "active": True,
        "password_hash": get_password_hash(fields.pop("password", "secret123")),
        "created_at": utcnow(),
        **fields,
    }
    await db["people"].insert_one(person)
    person["id"] = person.pop("_id")
    return person


def session_headers(person: Dict[str, Any]) -> Dict[str, str]:
    token = create_session_token(person)
    return {"Cookie": f"{settings.SESSION_COOKIE_NAME}={token}"}


@pytest_asyncio.fixture
async def admin_headers(db_client) -> Dict[str, str]:
    return session_headers(await insert_person(db_client, "ADMIN", full_name="Ana Admin"))


@pytest_asyncio.fixture
async def advisor(db_client) -> Dict[str, Any]:
    return await insert_person(db_client, "VENDEDORA", full_name="Vera Vendedora")


@pytest_asyncio.fixture
async def advisor_headers(advisor) -> Dict[str, str]:
    return session_headers(advisor)
