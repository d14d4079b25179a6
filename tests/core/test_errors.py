# tests/core/test_errors.py
import pytest
from httpx import AsyncClient
from fastapi import status
from pymongo.errors import AutoReconnect, OperationFailure

from atlas_core.core.database import is_transient_error, with_db_retry


def test_transient_error_classification():
    assert is_transient_error(AutoReconnect("connection reset"))
    assert is_transient_error(OperationFailure("x", code=91, details={"errorLabels": ["RetryableWriteError"]}))
    assert not is_transient_error(ValueError("bad input"))
    assert not is_transient_error(None)


async def test_with_db_retry_retries_transient_errors_only():
    calls = {"n": 0}

    async def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise AutoReconnect("temporarily unavailable")
        return "done"

    assert await with_db_retry(flaky, attempts=3, delay=0, op_name="flaky") == "done"
    assert calls["n"] == 3

    async def broken():
        calls["n"] += 1
        raise ValueError("boom")

    calls["n"] = 0
    with pytest.raises(ValueError):
        await with_db_retry(broken, attempts=3, delay=0, op_name="broken")
    assert calls["n"] == 1


async def test_no_session_envelope(test_client: AsyncClient):
    response = await test_client.get("/endpoints/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"ok": False, "error": "no_session"}


async def test_validation_errors_are_400(test_client: AsyncClient):
    response = await test_client.post("/endpoints/auth/login", json={"username": "x"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    body = response.json()
    assert body["ok"] is False
    assert body["error"] == "validation_error"
    assert any(err["field"] == "password" for err in body["errors"])
