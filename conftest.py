"""
conftest.py  – Test fixtures for the notification inbox backend.

Key points
----------
* Settings come from `.env.test` (ENVIRONMENT=test, memory backend).
* Every test gets a fresh `InMemoryNotificationGateway`.
* httpx.AsyncClient with dependency overrides for the gateway + auth.

`asyncio_mode = auto` is set in pytest.ini so coroutine tests need no marker.
"""

import os
import pathlib

# Must happen before any `app.*` import reads the environment
_ROOT = pathlib.Path(__file__).resolve().parent
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DOTENV_PATH", str(_ROOT / ".env.test"))

from typing import Any, Dict

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

import sentry_sdk
from main import app as fastapi_app

from app.db.memory import InMemoryNotificationGateway


# --------------------------------------------------------------------------
# Notification store
# --------------------------------------------------------------------------
@pytest.fixture()
def gateway() -> InMemoryNotificationGateway:
    return InMemoryNotificationGateway()


# --------------------------------------------------------------------------
# httpx.AsyncClient with dependency override for the gateway
# --------------------------------------------------------------------------
@pytest_asyncio.fixture(scope="function")
async def client(gateway: InMemoryNotificationGateway):
    from app.api import deps

    async def override_get_gateway():
        return gateway

    fastapi_app.dependency_overrides[deps.get_notification_gateway] = override_get_gateway

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport,
                           base_url="http://testserver") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


# --------------------------------------------------------------------------
# Users – the owner id is just the (stub) Firebase uid
# --------------------------------------------------------------------------
@pytest.fixture()
def test_user1() -> Dict[str, Any]:
    return {"firebase_uid": f"uid_user1_{os.urandom(3).hex()}", "email": "user1@example.com"}


@pytest.fixture()
def test_user2() -> Dict[str, Any]:
    return {"firebase_uid": f"uid_user2_{os.urandom(3).hex()}", "email": "user2@example.com"}


# --------------------------------------------------------------------------
# Auth-mocking helpers
# --------------------------------------------------------------------------
@pytest.fixture(scope="function")
def mock_auth(test_user1: Dict[str, Any]):
    from app.api import deps
    from app.schemas.token import FirebaseTokenData

    token = FirebaseTokenData(uid=test_user1["firebase_uid"], email=test_user1["email"])

    async def override() -> FirebaseTokenData:
        return token

    fastapi_app.dependency_overrides[deps.get_verified_token_data] = override
    yield
    fastapi_app.dependency_overrides.pop(deps.get_verified_token_data, None)


@pytest.fixture(scope="function")
def mock_auth_invalid():
    from app.api import deps
    from fastapi import HTTPException, status

    async def override():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Mock Auth: Invalid Token"
        )

    fastapi_app.dependency_overrides[deps.get_verified_token_data] = override
    yield
    fastapi_app.dependency_overrides.pop(deps.get_verified_token_data, None)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """
    Ensure SlowAPI’s in-memory storage is empty for every test.
    """
    limiter = getattr(fastapi_app.state, "limiter", None)
    if limiter:
        limiter.reset()
    yield
    if limiter:
        limiter.reset()


# ---------- helper: build an Authorization header for a given user ----------
@pytest.fixture
def make_auth_header():
    """
    Tests call:  headers = make_auth_header(test_user)
    """
    def _make(user: dict[str, str], token_type: str = "Bearer") -> dict[str, str]:
        return {"Authorization": f"{token_type} {user['firebase_uid']}"}

    return _make


@pytest.fixture(scope="session", autouse=True)
def _close_sentry():
    """
    Flush the event queue and disable the client after the test
    session ends, if a client was initialised.
    """
    yield

    sentry_sdk.flush()

    client = sentry_sdk.get_client()
    if client.is_active():
        client.close(timeout=2.0)
